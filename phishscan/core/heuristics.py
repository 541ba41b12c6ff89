"""
Lexical/structural URL heuristics.

Everything here is pure: no network I/O, no exceptions escaping to the caller.
The score is an uncapped sum of independent contributions; the aggregator caps
it before blending.
"""

import re
import logging
from typing import Dict, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# ===== Contribution weights =====
ANCHOR_MISMATCH_SCORE = 12
PUNYCODE_SCORE = 10
IP_HOST_SCORE = 12
SUSPICIOUS_TLD_SCORE = 8
REDIRECT_HOP_SCORE = 3
REDIRECT_MAX_SCORE = 12
REDIRECT_MIN_HOPS = 3
OFFSITE_REDIRECT_SCORE = 6

SUSPICIOUS_TLDS = {'zip', 'review', 'country', 'kim', 'gq', 'work', 'top', 'men', 'party'}

PUNYCODE_PREFIX = 'xn--'

_IPV4_HOST_RE = re.compile(r'^(\d{1,3}\.){3}\d{1,3}$')

# First host- or URL-looking token in a link's visible text
_ANCHOR_HOST_RE = re.compile(
    r'https?://[^\s/]+|www\.[^\s/]+|[a-z0-9.-]+\.[a-z]{2,}',
    re.IGNORECASE
)


def get_hostname(url: Optional[str]) -> Optional[str]:
    """Return the lowercased hostname of an absolute URL, or None if it has none."""
    if not url:
        return None
    try:
        return urlparse(url).hostname or None
    except ValueError:
        return None


def _normalize_host(host: str) -> str:
    host = host.lower().rstrip('.')
    if host.startswith('www.'):
        host = host[4:]
    return host


def _ascii_host(host: str) -> str:
    """IDNA form of a hostname, as HTTP clients report it after redirects."""
    try:
        return host.encode('idna').decode('ascii').lower()
    except UnicodeError:
        return host.lower()


def _anchor_host(anchor_text: str) -> Optional[str]:
    match = _ANCHOR_HOST_RE.search(anchor_text)
    if not match:
        return None
    token = match.group(0)
    if token.lower().startswith('http'):
        return get_hostname(token)
    return token


def is_punycode(hostname: str) -> bool:
    return PUNYCODE_PREFIX in hostname


def has_ip_hostname(hostname: str) -> bool:
    return bool(_IPV4_HOST_RE.match(hostname))


def heuristic_features(url: str, anchor_text: Optional[str] = None,
                       redirect_count: int = 0, final_url: Optional[str] = None) -> Dict[str, int]:
    """
    Compute each triggered heuristic and its contribution.

    Args:
        url: The URL being scanned
        anchor_text: Visible text of the link, if any
        redirect_count: Hops observed by the redirect resolver
        final_url: Where the redirect chain ended, if known

    Returns:
        Mapping of feature name to score; empty for malformed URLs
    """
    hostname = get_hostname(url)
    if not hostname:
        return {}

    features: Dict[str, int] = {}

    if anchor_text:
        try:
            anchor_host = _anchor_host(anchor_text)
            if anchor_host and _normalize_host(anchor_host) != _normalize_host(hostname):
                features['anchor_mismatch'] = ANCHOR_MISMATCH_SCORE
        except ValueError as e:
            logger.debug(f"Ignoring unparsable anchor text host: {e}")

    if is_punycode(hostname):
        features['punycode'] = PUNYCODE_SCORE

    if has_ip_hostname(hostname):
        features['ip_host'] = IP_HOST_SCORE

    tld = hostname.rsplit('.', 1)[-1]
    if tld in SUSPICIOUS_TLDS:
        features['suspicious_tld'] = SUSPICIOUS_TLD_SCORE

    if isinstance(redirect_count, int) and redirect_count >= REDIRECT_MIN_HOPS:
        features['redirect_chain'] = min(REDIRECT_MAX_SCORE, redirect_count * REDIRECT_HOP_SCORE)

    final_host = get_hostname(final_url)
    if final_host and _ascii_host(final_host) != _ascii_host(hostname):
        features['offsite_redirect'] = OFFSITE_REDIRECT_SCORE

    return features


def heuristic_score(url: str, anchor_text: Optional[str] = None,
                    redirect_count: int = 0, final_url: Optional[str] = None) -> int:
    """Total heuristic risk for a URL (>= 0, not clamped)."""
    return sum(heuristic_features(url, anchor_text, redirect_count, final_url).values())
