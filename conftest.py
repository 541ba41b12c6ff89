import asyncio
from typing import Dict, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from phishscan.core.cache import ScanCache
from phishscan.core.domain_auth import DomainAuth
from phishscan.core.redirects import RedirectInfo
from phishscan.core.risk_scorer import RiskScorer
from phishscan.core.threat_intel import SignalResult
from phishscan.services.aggregator import SignalAggregator


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeReputation:
    """Stands in for a reputation client; records every URL it is asked about."""

    def __init__(self, result: Optional[SignalResult] = None, error: Optional[Exception] = None,
                 delay: float = 0.0):
        self.result = result or SignalResult.absent()
        self.error = error
        self.delay = delay
        self.calls = []
        self.completed = 0

    async def check_url(self, url: str) -> SignalResult:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        self.completed += 1
        return self.result


class FakeRedirects:
    def __init__(self, info: Optional[RedirectInfo] = None, error: Optional[Exception] = None,
                 delay: float = 0.0):
        self.info = info or RedirectInfo()
        self.error = error
        self.delay = delay
        self.calls = []

    async def resolve(self, url: str) -> RedirectInfo:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.info


class FakeDomainAuth:
    def __init__(self, auth: Optional[DomainAuth] = None, error: Optional[Exception] = None):
        self.auth = auth or DomainAuth()
        self.error = error
        self.calls = []

    async def check(self, domain: str) -> DomainAuth:
        self.calls.append(domain)
        if self.error:
            raise self.error
        return self.auth


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_aggregator(clock):
    """Build a SignalAggregator wired to fakes; override any collaborator by keyword."""
    def _make(**overrides) -> SignalAggregator:
        parts: Dict = {
            'ipqs': FakeReputation(),
            'stalkphish': FakeReputation(),
            'redirect_resolver': FakeRedirects(),
            'domain_auth': FakeDomainAuth(),
            'cache': ScanCache(ttl_seconds=3600, clock=clock),
            'risk_scorer': RiskScorer(
                url_thresholds={'malicious': 70, 'suspicious': 40},
                email_thresholds={'malicious': 80, 'suspicious': 50},
            ),
        }
        parts.update(overrides)
        return SignalAggregator(**parts)
    return _make


@pytest.fixture
def db_session_factory():
    from phishscan.database import Base
    import phishscan.models  # noqa: F401

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
