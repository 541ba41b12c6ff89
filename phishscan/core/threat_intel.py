import asyncio
import logging
import requests
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import quote

from phishscan.config import settings
from phishscan.core.risk_scorer import normalize_score

logger = logging.getLogger(__name__)

USER_AGENT = 'PhishScan/1.0'


@dataclass(frozen=True)
class SignalResult:
    """
    One reputation source's opinion about a URL.

    `score is None` means the source produced no usable reading (no key,
    timeout, bad response). That is not the same as a score of 0 and must be
    left out of any weighted average.
    """
    score: Optional[int] = None
    flags: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def absent(cls) -> 'SignalResult':
        return cls()

    @property
    def is_present(self) -> bool:
        return self.score is not None

    def to_dict(self) -> Dict:
        return {'score': self.score, 'flags': dict(self.flags)}


class ReputationClient:
    """
    Base class for a single keyed URL-reputation provider.

    Subclasses build the request and parse the JSON body; this class owns the
    fail-open policy: any failure becomes SignalResult.absent() and is never
    raised to the caller.
    """

    name = 'reputation'

    def __init__(self, api_key: Optional[str], timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.timeout = timeout if timeout is not None else settings.REPUTATION_TIMEOUT

        # Reuse TCP connections for all API calls
        self.http_session = session or requests.Session()
        self.http_session.headers.update({'User-Agent': USER_AGENT})

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def check_url(self, url: str) -> SignalResult:
        """Look up a URL without blocking the event loop."""
        if not self.enabled:
            return SignalResult.absent()
        return await asyncio.to_thread(self.lookup, url)

    def lookup(self, url: str) -> SignalResult:
        """Blocking lookup with a bounded timeout."""
        if not self.enabled:
            return SignalResult.absent()

        try:
            response = self._request(url)

            if response.status_code == 200:
                return self._parse(response.json())
            elif response.status_code == 429:
                logger.warning(f"⚠️ {self.name} rate limit exceeded")
            elif response.status_code in (401, 403):
                logger.error(f"❌ {self.name} authentication failed (invalid API key)")
            else:
                logger.warning(f"⚠️ {self.name} returned status code: {response.status_code}")

        except requests.Timeout:
            logger.warning(f"⚠️ {self.name} request timeout")
        except requests.exceptions.JSONDecodeError as e:
            logger.warning(f"⚠️ {self.name} returned malformed JSON: {e}")
        except requests.RequestException as e:
            logger.error(f"❌ {self.name} request error: {e}")
        except ValueError as e:
            logger.warning(f"⚠️ {self.name} returned malformed JSON: {e}")
        except Exception as e:
            logger.error(f"❌ Unexpected error in {self.name} check: {e}")

        return SignalResult.absent()

    def _request(self, url: str) -> requests.Response:
        raise NotImplementedError

    def _parse(self, data) -> SignalResult:
        raise NotImplementedError


class IPQSClient(ReputationClient):
    """IPQualityScore malicious URL scanner (fraud_score is already 0-100)."""

    name = 'ipqs'
    endpoint = 'https://ipqualityscore.com/api/json/url'
    flag_fields = ('malicious', 'phishing', 'malware', 'suspicious')

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(api_key if api_key is not None else settings.IPQS_API_KEY, **kwargs)

    def _request(self, url: str) -> requests.Response:
        endpoint = f'{self.endpoint}/{self.api_key}/{quote(url, safe="")}'
        return self.http_session.get(endpoint, timeout=self.timeout)

    def _parse(self, data) -> SignalResult:
        if not isinstance(data, dict):
            logger.warning(f"⚠️ {self.name} returned an unexpected payload type")
            return SignalResult.absent()
        if data.get('success') is False:
            logger.warning(f"⚠️ {self.name} request rejected: {data.get('message', 'no message')}")
            return SignalResult.absent()

        return SignalResult(
            score=normalize_score(data.get('fraud_score')),
            flags={flag: bool(data.get(flag)) for flag in self.flag_fields}
        )


class StalkPhishClient(ReputationClient):
    """StalkPhish URL scan (riskScore, no verdict flags)."""

    name = 'stalkphish'
    endpoint = 'https://api.stalkphish.io/v1/scan'

    def __init__(self, api_key: Optional[str] = None, **kwargs):
        super().__init__(api_key if api_key is not None else settings.STALKPHISH_API_KEY, **kwargs)

    def _request(self, url: str) -> requests.Response:
        params = {'key': self.api_key, 'url': url}
        return self.http_session.get(self.endpoint, params=params, timeout=self.timeout)

    def _parse(self, data) -> SignalResult:
        if not isinstance(data, dict):
            logger.warning(f"⚠️ {self.name} returned an unexpected payload type")
            return SignalResult.absent()
        return SignalResult(score=normalize_score(data.get('riskScore')))
