"""
Parsers for the free text returned by the generative model.

Two layouts are understood.

Question lists, one question per line, optionally numbered::

    1. What is a race condition?
    2. Explain idempotency.

Answer evaluations, as labeled sections in any order::

    Assessment: <paragraph>
    Strengths:
    • <item>
    Areas for Improvement:
    • <item>
    Model Answer: <text>
    Score: 7/10

A section runs from its label to the next known label. Labels may be
wrapped in markdown emphasis or headings ("**Strengths:**", "## Score:")
or numbered ("2. Strengths:"). Text before the first label is used as the
assessment when there is no explicit Assessment label. Nothing here raises
on malformed input: missing sections come back empty and a missing score
comes back as 0.
"""
import re
from typing import Dict, List, Optional

from .constants import MAX_SCORE, MIN_SCORE

NUMBERED_PREFIX = re.compile(r'^\d+[.)]\s*')
BULLET_PREFIX = re.compile(r'^(?:[-*•]|\d+[.)])\s+')
EMPHASIS = re.compile(r'\*\*|__|\*')
SCORE = re.compile(r'\bscore\s*[*_]*\s*:[^\d\n]*(\d+)', re.IGNORECASE)
LEADING_NUMBER = re.compile(r'[^\d\n]*(\d+)')

SECTION_LABELS = {
    'assessment': r'(?:overall\s+)?assessment',
    'strengths': r'(?:key\s+)?strengths',
    'improvements': r'(?:areas?\s+for\s+improvements?|improvements|weaknesses)',
    'preferred_answer': r'(?:model|suggested|preferred|ideal)\s+answer',
    'score': r'score',
}

_LABEL_PATTERN = re.compile(
    r'^[ \t#>*_]*(?:\d+[.)]\s*)?[*_]*(?P<label>'
    + '|'.join(f'(?P<{name}>{pattern})' for name, pattern in SECTION_LABELS.items())
    + r')\s*[*_]*\s*:[ \t]*[*_]*',
    re.IGNORECASE | re.MULTILINE,
)


def parse_question_list(text: str) -> List[str]:
    """Split a numbered-list response into question strings.

    Blank lines are dropped; every other line yields one question with its
    "N. " prefix removed and surrounding whitespace trimmed.
    """
    if not text:
        return []
    questions = []
    for line in text.split('\n'):
        if not line.strip():
            continue
        questions.append(NUMBERED_PREFIX.sub('', line.strip()).strip())
    return questions


def clean_emphasis(text: str) -> str:
    return EMPHASIS.sub('', text).strip()


def parse_bullets(section: str) -> List[str]:
    """Turn a bulleted section into a list of cleaned items.

    Items are separated by newlines or the bullet character; leading "-",
    "*" or "N." markers and emphasis markup are removed.
    """
    if not section:
        return []
    items = []
    for line in re.split(r'[\n•]', section):
        item = BULLET_PREFIX.sub('', line.strip())
        item = clean_emphasis(item)
        if item:
            items.append(item)
    return items


def extract_score(text: str) -> int:
    """Integer on the "Score:" line, clamped to [1, 10]; 0 if none.

    The labeled Score section is read first so a "...score: 2" inside
    other prose cannot win; an inline "Score:" is only a fallback.
    """
    if not text:
        return 0
    section = split_sections(text).get('score')
    if section is not None:
        match = LEADING_NUMBER.match(section)
    else:
        match = SCORE.search(text)
    if not match:
        return 0
    return clamp_score(int(match.group(1)))


def clamp_score(score: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, score))


def split_sections(text: str) -> Dict[str, str]:
    """Map each known label to the text between it and the next label.

    The key 'preamble' holds whatever precedes the first label. Only the
    first occurrence of a label is kept.
    """
    sections: Dict[str, str] = {}
    matches = list(_LABEL_PATTERN.finditer(text or ''))
    sections['preamble'] = (text[:matches[0].start()] if matches else (text or '')).strip()
    for i, match in enumerate(matches):
        name = next(key for key in SECTION_LABELS if match.group(key))
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        if name not in sections:
            sections[name] = text[match.end():end].strip()
    return sections


def parse_feedback(text: str) -> Dict:
    """Parse an answer evaluation into feedback fields.

    Returns a dict with 'feedback' (assessment text), 'strengths',
    'improvements', 'preferred_answer' (None when the model gave none) and
    'score'.
    """
    sections = split_sections(text or '')
    assessment = sections.get('assessment') or sections['preamble']
    preferred: Optional[str] = clean_emphasis(sections.get('preferred_answer', '')) or None
    return {
        'feedback': assessment.strip(),
        'strengths': parse_bullets(sections.get('strengths', '')),
        'improvements': parse_bullets(sections.get('improvements', '')),
        'preferred_answer': preferred,
        'score': extract_score(text or ''),
    }
