"""
Suggest tutorial videos for a weak evaluation result.

Keywords are pulled out of the evaluator's errors and feedback and matched
against video titles. It is a heuristic; nothing guarantees relevance.
"""
import re

MAX_KEYWORDS = 20
MIN_KEYWORD_LENGTH = 4
RECOMMEND_BELOW_SCORE = 8
TOP_N = 3

_TOKEN_RE = re.compile(r'[a-z0-9]+')

# Tokens shorter than MIN_KEYWORD_LENGTH never reach this set
STOP_WORDS = frozenset({
    'about', 'above', 'after', 'again', 'also', 'been', 'before', 'being',
    'below', 'between', 'both', 'could', 'does', 'doing', 'down', 'during',
    'each', 'every', 'from', 'further', 'good', 'great', 'have', 'having',
    'here', 'into', 'just', 'more', 'most', 'much', 'must', 'need', 'needs',
    'only', 'other', 'over', 'overall', 'please', 'same', 'should', 'some',
    'such', 'than', 'that', 'their', 'them', 'then', 'there', 'these', 'they',
    'this', 'those', 'through', 'under', 'until', 'very', 'well', 'were',
    'what', 'when', 'where', 'which', 'while', 'will', 'with', 'would',
    'your', 'yours', 'drawing', 'drawings', 'student', 'students', 'image',
    'make', 'sure', 'shows', 'appears', 'seems',
})


def extract_keywords(text):
    """Lowercase alphanumeric tokens (len >= 4), stop words removed, deduped in order, at most 20"""
    keywords = []
    seen = set()
    for token in _TOKEN_RE.findall((text or '').lower()):
        if len(token) < MIN_KEYWORD_LENGTH or token in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        keywords.append(token)
        if len(keywords) == MAX_KEYWORDS:
            break
    return keywords


def result_keywords(result):
    parts = list(result.get('errors') or [])
    parts.append(result.get('feedback') or '')
    return extract_keywords(' '.join(parts))


def match_count(title, keywords):
    title = (title or '').lower()
    return sum(1 for keyword in keywords if keyword in title)


def rank_videos(videos, keywords, limit=TOP_N):
    """Most keyword hits first; sorted() keeps fetch order for ties"""
    ranked = sorted(videos, key=lambda video: match_count(video.get('title'), keywords), reverse=True)
    return ranked[:limit]


def recommend_videos(result, videos, limit=TOP_N):
    if result.get('score', 0) >= RECOMMEND_BELOW_SCORE:
        return []
    return rank_videos(videos, result_keywords(result), limit=limit)
