"""
URL scan orchestration.

Runs every signal source for a URL concurrently, joins on all of them, and
folds the results into one 0-100 score and verdict. Results are memoized per
(url, anchor text, sender domain) for the cache TTL.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Dict, Optional

from phishscan.config import settings
from phishscan.core.cache import ScanCache, fingerprint
from phishscan.core.domain_auth import DomainAuth, DomainAuthChecker
from phishscan.core.heuristics import heuristic_score
from phishscan.core.redirects import RedirectInfo, RedirectResolver
from phishscan.core.risk_scorer import RiskScorer, clamp_score
from phishscan.core.threat_intel import IPQSClient, SignalResult, StalkPhishClient

logger = logging.getLogger(__name__)

DNS_TIMEOUT_MARGIN = 1.0


@dataclass(frozen=True)
class ScanTarget:
    url: str
    anchor_text: Optional[str] = None
    sender_domain: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.url, self.anchor_text, self.sender_domain)


@dataclass(frozen=True)
class AggregatedVerdict:
    url: str
    verdict: str
    score: int
    breakdown: Dict[str, Any] = field(default_factory=dict)
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'verdict': self.verdict,
            'score': self.score,
            'breakdown': self.breakdown,
            'cached': self.cached,
        }


class SignalAggregator:
    def __init__(self,
                 ipqs: Optional[IPQSClient] = None,
                 stalkphish: Optional[StalkPhishClient] = None,
                 redirect_resolver: Optional[RedirectResolver] = None,
                 domain_auth: Optional[DomainAuthChecker] = None,
                 cache: Optional[ScanCache] = None,
                 risk_scorer: Optional[RiskScorer] = None,
                 timeouts: Optional[Dict[str, float]] = None):
        """
        Every collaborator is injectable; defaults are built from settings.

        `timeouts` caps the total wall-clock time of each source, per lookup.

        `ipqs` is the higher-trust provider: only its flags can trigger the
        malicious override.
        """
        self.ipqs = ipqs or IPQSClient()
        self.stalkphish = stalkphish or StalkPhishClient()
        self.redirect_resolver = redirect_resolver or RedirectResolver()
        self.domain_auth = domain_auth or DomainAuthChecker()
        self.cache = cache if cache is not None else ScanCache(settings.CACHE_TTL)
        self.risk_scorer = risk_scorer or RiskScorer()
        self.timeouts = timeouts or {
            'ipqs': settings.REPUTATION_TIMEOUT,
            'stalkphish': settings.REPUTATION_TIMEOUT,
            'redirects': settings.REDIRECT_TIMEOUT,
            # SPF and DMARC each get the full resolver lifetime
            'domain_auth': settings.DNS_TIMEOUT + DNS_TIMEOUT_MARGIN,
        }

    async def aggregate(self, target: ScanTarget) -> AggregatedVerdict:
        """Score one URL, serving a cached verdict when a live one exists."""
        key = target.fingerprint
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {target.url}")
            return replace(cached, cached=True)

        ipqs_result, stalk_result, redirect, auth = await self._collect_signals(target)
        result = self._score(target, ipqs_result, stalk_result, redirect, auth)

        self.cache.set(key, result)
        return result

    async def _collect_signals(self, target: ScanTarget):
        """
        Launch all lookups at once and wait for every one to settle.

        Each lookup is wrapped so its failure turns into that source's neutral
        value; nothing is cancelled early.
        """
        lookups = [
            self._isolated(self.ipqs.check_url(target.url), SignalResult.absent(), 'ipqs'),
            self._isolated(self.stalkphish.check_url(target.url), SignalResult.absent(), 'stalkphish'),
            self._isolated(self.redirect_resolver.resolve(target.url), RedirectInfo(), 'redirects'),
        ]
        if target.sender_domain:
            lookups.append(self._isolated(self.domain_auth.check(target.sender_domain), DomainAuth(), 'domain_auth'))

        results = await asyncio.gather(*lookups)
        auth = results[3] if target.sender_domain else None
        return results[0], results[1], results[2], auth

    async def _isolated(self, lookup: Awaitable, fallback: Any, source: str) -> Any:
        timeout = self.timeouts.get(source)
        try:
            return await asyncio.wait_for(lookup, timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ {source} lookup exceeded {timeout}s, treating as absent")
            return fallback
        except Exception as e:
            logger.error(f"❌ {source} lookup failed, treating as absent: {e}")
            return fallback

    def _score(self, target: ScanTarget, ipqs_result: SignalResult, stalk_result: SignalResult,
               redirect: RedirectInfo, auth: Optional[DomainAuth]) -> AggregatedVerdict:
        scorer = self.risk_scorer

        heuristics_raw = heuristic_score(
            target.url,
            anchor_text=target.anchor_text,
            redirect_count=redirect.redirect_count,
            final_url=redirect.final_url
        )
        heuristics_contribution = scorer.heuristic_contribution(heuristics_raw)

        base_score = scorer.base_score({
            'ipqs': ipqs_result.score,
            'stalkphish': stalk_result.score,
        })

        # No sender domain: nothing was verified, so both records count as missing
        effective_auth = auth or DomainAuth()
        auth_bonus = scorer.auth_bonus(effective_auth.spf, effective_auth.dmarc)

        final_raw = clamp_score(base_score + heuristics_contribution + auth_bonus)

        override = scorer.is_override(ipqs_result.flags)
        final_score = scorer.apply_override(final_raw, override)

        breakdown = {
            'ipqs': ipqs_result.to_dict(),
            'stalkphish': {'score': stalk_result.score},
            'heuristics': {'raw': heuristics_raw, 'contribution': heuristics_contribution},
            'redirect': redirect.to_dict(),
            'auth': auth.to_dict() if auth is not None else None,
            'baseScore': base_score,
            'authBonus': auth_bonus,
            'finalRaw': final_raw,
            'override': override,
        }

        return AggregatedVerdict(
            url=target.url,
            verdict=scorer.url_verdict(final_score),
            score=final_score,
            breakdown=breakdown,
            cached=False
        )
