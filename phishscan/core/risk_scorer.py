import math
from typing import Any, Dict, Optional

from phishscan.config import settings

SAFE = 'safe'
SUSPICIOUS = 'suspicious'
MALICIOUS = 'malicious'


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def clamp_score(value: float, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, int(value)))


def normalize_score(value: Any) -> Optional[int]:
    """
    Map a provider's native score onto the 0-100 integer scale.

    Returns None when the value is missing or not numeric, so the caller can
    treat the source as absent instead of as a confident zero.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return clamp_score(round_half_up(number))


class RiskScorer:
    def __init__(self,
                 weights: Optional[Dict[str, float]] = None,
                 url_thresholds: Optional[Dict[str, int]] = None,
                 email_thresholds: Optional[Dict[str, int]] = None):
        """
        Blending policy for URL scans plus verdict thresholds for both scan surfaces.

        The URL and email threshold pairs are intentionally independent.
        """
        # Relative trust in each reputation provider
        self.weights = weights or {
            'ipqs': 0.5,
            'stalkphish': 0.25,
        }

        self.url_thresholds = url_thresholds or {
            'malicious': settings.URL_MALICIOUS_THRESHOLD,
            'suspicious': settings.URL_SUSPICIOUS_THRESHOLD,
        }
        self.email_thresholds = email_thresholds or {
            'malicious': settings.EMAIL_MALICIOUS_THRESHOLD,
            'suspicious': settings.EMAIL_SUSPICIOUS_THRESHOLD,
        }

        self.neutral_score = 50
        self.heuristic_cap = 30
        # (pass, fail-or-missing) offsets
        self.auth_offsets = {
            'spf': (-6, 6),
            'dmarc': (-4, 4),
        }
        self.override_floor = 85
        self.override_flags = ('malicious', 'phishing')

        self.email_weights = {
            'header': 0.4,
            'body': 0.2,
            'link': 0.4,
        }

    # ===== URL scoring =====

    def base_score(self, scores: Dict[str, Optional[int]]) -> int:
        """
        Weighted mean of the provider scores that are present.

        Missing providers drop out of both the sum and the denominator; with
        nothing present the result is the neutral midpoint.
        """
        weighted_sum = 0.0
        total_weight = 0.0
        for source, score in scores.items():
            if score is None:
                continue
            weight = self.weights.get(source, 0)
            weighted_sum += score * weight
            total_weight += weight

        if total_weight <= 0:
            return self.neutral_score
        return round_half_up(weighted_sum / total_weight)

    def heuristic_contribution(self, raw_heuristics: int) -> int:
        return min(self.heuristic_cap, max(0, raw_heuristics))

    def auth_bonus(self, spf: bool, dmarc: bool) -> int:
        spf_pass, spf_fail = self.auth_offsets['spf']
        dmarc_pass, dmarc_fail = self.auth_offsets['dmarc']
        return (spf_pass if spf else spf_fail) + (dmarc_pass if dmarc else dmarc_fail)

    def is_override(self, flags: Optional[Dict[str, bool]]) -> bool:
        """True if the trusted provider explicitly called the URL malicious/phishing."""
        if not flags:
            return False
        return any(flags.get(flag) for flag in self.override_flags)

    def apply_override(self, final_raw: int, override: bool) -> int:
        return max(final_raw, self.override_floor) if override else final_raw

    def url_verdict(self, score: int) -> str:
        return self._determine_verdict(score, self.url_thresholds)

    # ===== Email scoring =====

    def email_score(self, header_score: int, body_score: int, link_score: int) -> int:
        blended = (header_score * self.email_weights['header']
                   + body_score * self.email_weights['body']
                   + link_score * self.email_weights['link'])
        return clamp_score(round_half_up(blended))

    def email_verdict(self, score: int) -> str:
        return self._determine_verdict(score, self.email_thresholds)

    def _determine_verdict(self, risk_score: int, thresholds: Dict[str, int]) -> str:
        if risk_score >= thresholds['malicious']:
            return MALICIOUS
        elif risk_score >= thresholds['suspicious']:
            return SUSPICIOUS
        else:
            return SAFE
