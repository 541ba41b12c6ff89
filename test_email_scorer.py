import asyncio

import pytest
from pydantic import ValidationError

from conftest import FakeReputation
from phishscan.config import Settings
from phishscan.core.risk_scorer import RiskScorer
from phishscan.core.threat_intel import SignalResult
from phishscan.services.aggregator import AggregatedVerdict
from phishscan.services.email_scorer import EmailInputError, EmailScorer


class FakeAggregator:
    """Returns a fixed score per URL and tracks how many scans overlap."""

    def __init__(self, scores=None, delay=0.0):
        self.scores = scores or {}
        self.delay = delay
        self.risk_scorer = RiskScorer(
            url_thresholds={'malicious': 70, 'suspicious': 40},
            email_thresholds={'malicious': 80, 'suspicious': 50},
        )
        self.targets = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def aggregate(self, target):
        self.targets.append(target)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            score = self.scores.get(target.url, 0)
            return AggregatedVerdict(url=target.url, verdict=self.risk_scorer.url_verdict(score), score=score)
        finally:
            self.in_flight -= 1


def _score(scorer, headers=None, body="Hello there", links=None):
    return asyncio.run(scorer.score_email(headers, body, links))


def test_worst_link_wins():
    links = [{'href': 'https://evil.example/', 'anchorText': 'Pay now'}]
    links += [{'href': f'https://ok{i}.example/', 'anchorText': ''} for i in range(9)]
    aggregator = FakeAggregator({'https://evil.example/': 95})

    result = _score(EmailScorer(aggregator), links=links)

    link_analysis = result.breakdown['linkAnalysis']
    assert link_analysis['highestLinkScore'] == 95
    assert link_analysis['mostMaliciousLink'] == {'url': 'https://evil.example/', 'score': 95}
    assert link_analysis['linksScanned'] == 10
    # 0.4*10 (no headers) + 0.2*0 + 0.4*95
    assert result.score == 42
    assert result.verdict == 'safe'


def test_no_links():
    result = _score(EmailScorer(FakeAggregator()))
    assert result.breakdown['linkAnalysis'] == {'highestLinkScore': 0, 'mostMaliciousLink': None, 'linksScanned': 0}
    assert result.score == 4
    assert result.breakdown['finalScore'] == 4


def test_everything_bad_is_malicious():
    headers = (
        "Authentication-Results: spf=fail dkim=fail dmarc=fail\n"
        "Return-Path: <x@spam.example>\n"
        "From: IT <it@corp.example>"
    )
    body = ("urgent action required: account suspended. verify your account, password expired, "
            "unusual activity, security alert, confirm your identity")
    aggregator = FakeAggregator({'http://10.0.0.1/': 100})

    result = _score(EmailScorer(aggregator), headers=headers, body=body,
                    links=[{'href': 'http://10.0.0.1/', 'anchorText': 'portal'}])

    # 0.4*90 + 0.2*64 + 0.4*100 = 88.8
    assert result.score == 89
    assert result.verdict == 'malicious'
    assert result.breakdown['headerAnalysis']['mismatch_from_return'] is True
    assert len(result.breakdown['bodyAnalysis']['keywords']) == 8


def test_score_never_exceeds_100():
    scorer = RiskScorer()
    assert scorer.email_score(300, 300, 100) == 100
    assert scorer.email_score(0, 0, 0) == 0


def test_email_thresholds():
    scorer = RiskScorer(email_thresholds={'malicious': 80, 'suspicious': 50})
    assert scorer.email_verdict(80) == 'malicious'
    assert scorer.email_verdict(79) == 'suspicious'
    assert scorer.email_verdict(50) == 'suspicious'
    assert scorer.email_verdict(49) == 'safe'


def test_missing_body_is_input_error():
    aggregator = FakeAggregator()
    scorer = EmailScorer(aggregator)
    for body in ("", None):
        with pytest.raises(EmailInputError):
            _score(scorer, body=body, links=[{'href': 'https://example.com/'}])
    assert aggregator.targets == []


def test_links_without_href_are_skipped_and_duplicates_scanned_once():
    aggregator = FakeAggregator()
    links = [
        {'href': 'https://a.example/', 'anchorText': 'A'},
        {'href': 'https://a.example/', 'anchorText': 'A'},
        {'href': 'https://a.example/', 'anchorText': 'other text'},
        {'href': '', 'anchorText': 'empty'},
        {'anchorText': 'no href'},
    ]
    _score(EmailScorer(aggregator), links=links)
    assert [(t.url, t.anchor_text) for t in aggregator.targets] == [
        ('https://a.example/', 'A'),
        ('https://a.example/', 'other text'),
    ]
    assert all(t.sender_domain is None for t in aggregator.targets)


def test_link_fan_out_is_capped():
    aggregator = FakeAggregator(delay=0.01)
    links = [{'href': f'https://l{i}.example/'} for i in range(8)]
    _score(EmailScorer(aggregator, max_link_concurrency=3), links=links)
    assert len(aggregator.targets) == 8
    assert aggregator.max_in_flight <= 3


def test_html_body_links_are_extracted_when_not_supplied():
    aggregator = FakeAggregator({'http://1.2.3.4/x': 70})
    body = '<div><p>URGENT: please review</p><a href="http://1.2.3.4/x">paypal.com</a></div>'

    result = _score(EmailScorer(aggregator), body=body)

    assert [(t.url, t.anchor_text) for t in aggregator.targets] == [('http://1.2.3.4/x', 'paypal.com')]
    assert result.breakdown['bodyAnalysis']['keywords'] == ['urgent']
    assert result.breakdown['linkAnalysis']['highestLinkScore'] == 70


def test_shares_cache_with_url_scans(make_aggregator):
    ipqs = FakeReputation(SignalResult(score=20))
    aggregator = make_aggregator(ipqs=ipqs)
    scorer = EmailScorer(aggregator)
    links = [{'href': 'https://example.com/', 'anchorText': 'example.com'}]

    _score(scorer, links=links)
    _score(scorer, links=links)

    assert len(ipqs.calls) == 1


def test_link_concurrency_must_be_positive(monkeypatch):
    for value in ("0", "-3"):
        monkeypatch.setenv("MAX_LINK_CONCURRENCY", value)
        with pytest.raises(ValidationError):
            Settings()

    for value in (0, -3):
        with pytest.raises(ValueError):
            EmailScorer(FakeAggregator(), max_link_concurrency=value)
