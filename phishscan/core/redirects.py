import asyncio
import logging
import requests
from dataclasses import dataclass
from typing import Optional

from phishscan.config import settings
from phishscan.core.threat_intel import USER_AGENT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedirectInfo:
    final_url: Optional[str] = None
    redirect_count: int = 0

    def to_dict(self):
        return {'finalUrl': self.final_url, 'redirectCount': self.redirect_count}


class RedirectResolver:
    """Follows a URL's redirect chain and reports where it ends."""

    def __init__(self, timeout: Optional[float] = None, max_redirects: Optional[int] = None,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout if timeout is not None else settings.REDIRECT_TIMEOUT
        self.max_redirects = max_redirects if max_redirects is not None else settings.MAX_REDIRECTS

        self.http_session = session or requests.Session()
        self.http_session.headers.update({'User-Agent': USER_AGENT})
        self.http_session.max_redirects = self.max_redirects

    async def resolve(self, url: str) -> RedirectInfo:
        return await asyncio.to_thread(self.resolve_sync, url)

    def resolve_sync(self, url: str) -> RedirectInfo:
        """
        GET the URL following redirects; any failure yields an empty RedirectInfo.

        The body is streamed and discarded, only the final location matters.
        Any HTTP status is accepted.
        """
        try:
            response = self.http_session.get(url, timeout=self.timeout, allow_redirects=True, stream=True)
            try:
                return RedirectInfo(final_url=response.url or None, redirect_count=len(response.history))
            finally:
                response.close()
        except requests.TooManyRedirects:
            logger.warning(f"⚠️ More than {self.max_redirects} redirects for {url}")
        except requests.Timeout:
            logger.warning(f"⚠️ Redirect resolution timed out for {url}")
        except requests.RequestException as e:
            logger.debug(f"Redirect resolution failed for {url}: {e}")
        except Exception as e:
            logger.error(f"❌ Unexpected error resolving redirects for {url}: {e}")

        return RedirectInfo()
