import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from phishscan.config import settings
from phishscan.core.email_analyzer import (
    analyze_body,
    analyze_headers,
    extract_links_from_html,
    html_to_text,
    looks_like_html,
)
from phishscan.services.aggregator import AggregatedVerdict, ScanTarget, SignalAggregator

logger = logging.getLogger(__name__)


class EmailInputError(ValueError):
    """The request cannot be scored as given (e.g. no body)."""


@dataclass(frozen=True)
class EmailVerdict:
    verdict: str
    score: int
    breakdown: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'verdict': self.verdict, 'score': self.score, 'breakdown': self.breakdown}


class EmailScorer:
    def __init__(self, aggregator: SignalAggregator, max_link_concurrency: Optional[int] = None):
        self.aggregator = aggregator
        self.risk_scorer = aggregator.risk_scorer
        if max_link_concurrency is None:
            max_link_concurrency = settings.MAX_LINK_CONCURRENCY
        if max_link_concurrency < 1:
            raise ValueError(f"max_link_concurrency must be at least 1, got {max_link_concurrency}")
        self.max_link_concurrency = max_link_concurrency

    async def score_email(self, headers: Optional[str], body: Optional[str],
                          links: Optional[List[Dict[str, Any]]] = None) -> EmailVerdict:
        """
        Complete email scoring pipeline.

        Header and body analysis run inline; every link goes through the URL
        scan pipeline concurrently and only the riskiest one counts.

        Raises:
            EmailInputError: if the body is missing or empty
        """
        if not body:
            raise EmailInputError('missing email body')

        body_text = body
        if looks_like_html(body):
            if links is None:
                links = extract_links_from_html(body)
            body_text = html_to_text(body)

        header_analysis = analyze_headers(headers)
        body_analysis = analyze_body(body_text)

        link_results = await self._scan_links(self._targets(links or []))

        highest_link_score = 0
        most_malicious_link = None
        for result in link_results:
            if result.score > highest_link_score:
                highest_link_score = result.score
                most_malicious_link = {'url': result.url, 'score': result.score}

        final_score = self.risk_scorer.email_score(
            header_analysis['score'], body_analysis['score'], highest_link_score
        )

        breakdown = {
            'headerAnalysis': header_analysis['report'],
            'bodyAnalysis': {'keywords': body_analysis['keywords_found']},
            'linkAnalysis': {
                'highestLinkScore': highest_link_score,
                'mostMaliciousLink': most_malicious_link,
                'linksScanned': len(link_results),
            },
            'finalScore': final_score,
        }

        return EmailVerdict(
            verdict=self.risk_scorer.email_verdict(final_score),
            score=final_score,
            breakdown=breakdown
        )

    @staticmethod
    def _targets(links: List[Dict[str, Any]]) -> List[ScanTarget]:
        """One scan target per distinct (href, anchor text); entries without href are skipped."""
        targets: List[ScanTarget] = []
        seen = set()
        for link in links:
            href = (link.get('href') or '').strip()
            if not href:
                continue
            target = ScanTarget(url=href, anchor_text=link.get('anchorText') or None)
            if target in seen:
                continue
            seen.add(target)
            targets.append(target)
        return targets

    async def _scan_links(self, targets: List[ScanTarget]) -> List[AggregatedVerdict]:
        semaphore = asyncio.Semaphore(self.max_link_concurrency)

        async def _scan_one(target: ScanTarget) -> AggregatedVerdict:
            async with semaphore:
                return await self.aggregator.aggregate(target)

        return list(await asyncio.gather(*(_scan_one(target) for target in targets)))
