import re
import logging
from typing import Dict, List, Optional
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# ===== Header authentication weights (pass lowers risk, fail raises it) =====
AUTH_RESULT_WEIGHTS = {
    'spf': {'pass': -15, 'fail': 25},
    'dkim': {'pass': -10, 'fail': 20},
    'dmarc': {'pass': -5, 'fail': 25},
}
FROM_RETURN_MISMATCH_SCORE = 20
# No headers at all means no authentication evidence either way
MISSING_HEADERS_SCORE = 10

URGENCY_KEYWORD_SCORE = 8
URGENCY_KEYWORDS = [
    'urgent',
    'action required',
    'account suspended',
    'verify your account',
    'password expired',
    'unusual activity',
    'security alert',
    'confirm your identity',
]

_ADDRESS = r'<([a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,})>'
_FROM_RE = re.compile(r'from:.*' + _ADDRESS)
_RETURN_PATH_RE = re.compile(r'return-path:.*' + _ADDRESS)

_HTML_HINT_RE = re.compile(r'<\s*(a|html|body|div|p|br|table|span)\b', re.IGNORECASE)


def analyze_headers(headers_text: Optional[str]) -> Dict:
    """
    Score raw header text on authentication results and sender consistency.

    Args:
        headers_text: Raw header block as shown by the mail client

    Returns:
        {'score': int >= 0, 'report': {spf, dkim, dmarc, mismatch_from_return}}
    """
    report = {'spf': 'neutral', 'dkim': 'neutral', 'dmarc': 'neutral', 'mismatch_from_return': False}
    if not headers_text:
        return {'score': MISSING_HEADERS_SCORE, 'report': report}

    lower_headers = headers_text.lower()
    score = 0

    for mechanism, weights in AUTH_RESULT_WEIGHTS.items():
        # pass wins when both markers are present
        for outcome in ('pass', 'fail'):
            if f'{mechanism}={outcome}' in lower_headers:
                score += weights[outcome]
                report[mechanism] = outcome
                break

    from_match = _FROM_RE.search(lower_headers)
    return_path_match = _RETURN_PATH_RE.search(lower_headers)
    if from_match and return_path_match and from_match.group(1) != return_path_match.group(1):
        score += FROM_RETURN_MISMATCH_SCORE
        report['mismatch_from_return'] = True

    return {'score': max(0, score), 'report': report}


def analyze_body(body_text: Optional[str]) -> Dict:
    """Score urgency/social-engineering language. Each keyword counts once."""
    keywords_found: List[str] = []
    if not body_text:
        return {'score': 0, 'keywords_found': keywords_found}

    lower_body = body_text.lower()
    for keyword in URGENCY_KEYWORDS:
        if keyword in lower_body:
            keywords_found.append(keyword)

    return {'score': URGENCY_KEYWORD_SCORE * len(keywords_found), 'keywords_found': keywords_found}


# ===== HTML bodies =====

def looks_like_html(text: Optional[str]) -> bool:
    return bool(text and _HTML_HINT_RE.search(text))


def html_to_text(html: str) -> str:
    """Visible text of an HTML body, whitespace collapsed."""
    try:
        soup = BeautifulSoup(html, 'lxml')
        for tag in soup(['script', 'style']):
            tag.decompose()
        text = soup.get_text(separator=' ')
        return re.sub(r'\s+', ' ', text).strip()
    except Exception as e:
        logger.warning(f"⚠️ HTML parsing error: {e}")
        return re.sub(r'<[^>]+>', ' ', html)


def extract_links_from_html(html: str) -> List[Dict[str, str]]:
    """
    Pull {href, anchorText} pairs out of <a> tags, in document order.

    Only absolute http(s) links are returned; mailto:, anchors and
    javascript: targets are not scannable URLs.
    """
    links: List[Dict[str, str]] = []
    try:
        soup = BeautifulSoup(html, 'lxml')
    except Exception as e:
        logger.warning(f"⚠️ HTML parsing error while extracting links: {e}")
        return links

    for tag in soup.find_all('a', href=True):
        href = tag['href'].strip()
        if not href.lower().startswith(('http://', 'https://')):
            continue
        links.append({'href': href, 'anchorText': tag.get_text(strip=True)})
    return links
