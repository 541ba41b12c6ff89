import asyncio
from unittest.mock import MagicMock

import dns.exception
import dns.resolver
import requests

from phishscan.core.domain_auth import DomainAuth, DomainAuthChecker
from phishscan.core.redirects import RedirectInfo, RedirectResolver


class _TXT:
    def __init__(self, *chunks: bytes):
        self.strings = chunks


class FakeResolver:
    """Answers TXT queries from a dict; values that are exceptions are raised."""

    def __init__(self, answers):
        self.answers = answers
        self.queries = []
        self.lifetime = None

    def resolve(self, name, rdtype, lifetime=None):
        self.queries.append((name, rdtype))
        answer = self.answers.get(name, dns.resolver.NXDOMAIN())
        if isinstance(answer, Exception):
            raise answer
        return answer

# ===== Domain authentication =====

def test_domain_auth_both_records():
    resolver = FakeResolver({
        'example.com': [_TXT(b'google-site-verification=abc'), _TXT(b'v=spf1 include:_spf.', b'google.com ~all')],
        '_dmarc.example.com': [_TXT(b'V=DMARC1; p=reject')],
    })
    checker = DomainAuthChecker(timeout=2, resolver=resolver)

    assert asyncio.run(checker.check('Example.COM')) == DomainAuth(spf=True, dmarc=True)
    assert ('_dmarc.example.com', 'TXT') in resolver.queries


def test_domain_auth_lookups_fail_independently():
    resolver = FakeResolver({
        'example.com': [_TXT(b'v=spf1 -all')],
        '_dmarc.example.com': dns.exception.Timeout(),
    })
    checker = DomainAuthChecker(timeout=2, resolver=resolver)
    assert asyncio.run(checker.check('example.com')) == DomainAuth(spf=True, dmarc=False)

    resolver = FakeResolver({
        'example.com': dns.resolver.NoNameservers(),
        '_dmarc.example.com': [_TXT(b'v=DMARC1; p=none')],
    })
    checker = DomainAuthChecker(timeout=2, resolver=resolver)
    assert asyncio.run(checker.check('example.com')) == DomainAuth(spf=False, dmarc=True)


def test_domain_auth_unrelated_txt_records():
    resolver = FakeResolver({'example.com': [_TXT(b'hello world')]})
    checker = DomainAuthChecker(timeout=2, resolver=resolver)
    assert asyncio.run(checker.check('example.com')) == DomainAuth(spf=False, dmarc=False)


def test_domain_auth_blank_domain_skips_dns():
    resolver = FakeResolver({})
    checker = DomainAuthChecker(timeout=2, resolver=resolver)
    assert asyncio.run(checker.check('  ')) == DomainAuth()
    assert resolver.queries == []

# ===== Redirect resolution =====

def test_redirect_chain_is_counted():
    session = MagicMock()
    response = MagicMock()
    response.url = "https://landing.example.org/final"
    response.history = [MagicMock(), MagicMock(), MagicMock()]
    session.get.return_value = response

    resolver = RedirectResolver(timeout=10, max_redirects=10, session=session)
    info = asyncio.run(resolver.resolve("http://short.example/abc"))

    assert info == RedirectInfo(final_url="https://landing.example.org/final", redirect_count=3)
    assert session.max_redirects == 10
    kwargs = session.get.call_args[1]
    assert kwargs['timeout'] == 10
    assert kwargs['allow_redirects'] is True
    response.close.assert_called_once()


def test_redirect_failures_yield_empty_info():
    for failure in (
        requests.ConnectionError("refused"),
        requests.Timeout("slow"),
        requests.TooManyRedirects("loop"),
        requests.exceptions.MissingSchema("no scheme"),
    ):
        session = MagicMock()
        session.get.side_effect = failure
        resolver = RedirectResolver(timeout=10, max_redirects=10, session=session)
        assert resolver.resolve_sync("http://example.com") == RedirectInfo(final_url=None, redirect_count=0)
