"""Guess title, authors, year, publisher and abstract from raw PDF page text.

Every heuristic is best-effort: no match means None (or []), never an error.
The input is the text of the first one or two pages, turned into a list of
trimmed, non-empty lines by ``pdf_lines``.

Title lines are classified by TITLE_RULES, an ordered table of
(name, predicate, action) rows; the first row whose predicate matches decides
what happens to the line. Author, year and publisher guesses are ordered
tables of strategies; the first strategy that yields something wins.
"""

import datetime
import re

TITLE_SCAN_LINES = 12
AUTHOR_SCAN = slice(1, 15)  # lines 2-15
YEAR_STANDALONE_LINES = 5
MAX_TITLE_LENGTH = 200
MAX_ABSTRACT_LENGTH = 2000

# Title line actions
TAKE = 'take'
SKIP = 'skip'
STOP = 'stop'
# Ends a title in progress; before any title line it is skipped
# (running headers with affiliations or e-mails often sit above the title).
BOUNDARY = 'boundary'
# Ends a title in progress unless the title so far ends on a connective;
# before any title line it is taken as text.
CLOSE = 'close'

MONTHS = {
    'jan': 1, 'january': 1, 'feb': 2, 'february': 2, 'mar': 3, 'march': 3,
    'apr': 4, 'april': 4, 'may': 5, 'jun': 6, 'june': 6, 'jul': 7, 'july': 7,
    'aug': 8, 'august': 8, 'sep': 9, 'sept': 9, 'september': 9,
    'oct': 10, 'october': 10, 'nov': 11, 'november': 11, 'dec': 12, 'december': 12,
}

LIGATURES = {
    '\ufb00': 'ff',   # ﬀ
    '\ufb01': 'fi',   # ﬁ
    '\ufb02': 'fl',   # ﬂ
    '\ufb03': 'ffi',  # ﬃ
    '\ufb04': 'ffl',  # ﬄ
    '\ufb05': 'st',   # ﬅ (long s + t)
    '\ufb06': 'st',   # ﬆ
}

DASHES = '–—'
MARKERS = '*†‡§¶¹²³⁴⁵⁶⁷⁸⁹⁰'

SECTION_HEADING = re.compile(
    r'^(?:\d+\.?\s*|I\.\s*)?(?:abstract|introduction|keywords?|key\s+words|index\s+terms)'
    r'\s*(?:$|[:.' + DASHES + r'-])',
    re.IGNORECASE,
)
INLINE_ABSTRACT = re.compile(r'^abstract\s+(?=[A-Z])', re.IGNORECASE)
EMAIL = re.compile(r'[\w.+-]+@[\w-]+(?:\.[\w-]+)+')
NUMERIC_FRAGMENT = re.compile(r'^[\d\s.,:;/()\[\]#' + DASHES + r'-]{1,20}$')
DOCUMENT_LABEL = re.compile(
    r'^(?:working\s+paper|technical\s+report|discussion\s+paper|research\s+paper|policy\s+brief|'
    r'policy\s+paper|white\s+paper|research\s+report|occasional\s+paper|briefing\s+paper|'
    r'issue\s+brief|preprint|draft|report)'
    r'(?:\s+(?:no\.?|number|series|#)?\s*[\w./-]*)?$',
    re.IGNORECASE,
)
MONTH_YEAR_LINE = re.compile(r'^([A-Za-z]{3,9})\.?\s+(?:\d{1,2},?\s+)?(?:19|20)\d{2}$')
CONNECTIVE_END = re.compile(r'(?:\b(?:of|and|for|the|in|on|to|with|a|an|from|by|via|&)|[:,\-])$', re.IGNORECASE)

EXPLICIT_AUTHORS = re.compile(r'^authors?(?:\s*\(s\))?\s*[:' + DASHES + r'-]\s*(.+)$', re.IGNORECASE)
BY_PREFIX = re.compile(r'^(?i:by)\s+([A-Z].*)$')
ACADEMIC_TITLE = re.compile(r'\b(?:Dr|Prof)\.\s*[A-Z]|\bProfessor\s+[A-Z]')
HONORIFICS = re.compile(r'\b(?:Dr|Prof|Professor|Mr|Mrs|Ms)\b\.?\s*|,?\s*\b(?:Ph\.?\s?D|MD|MSc|BSc)\b\.?')
ORCID = re.compile(r'\b\d{4}-\d{4}-\d{4}-\d{3}[\dX]\b|\borcid(?:\.org)?[:/\s]*', re.IGNORECASE)
FOOTNOTE_MARK = re.compile(r'(?<=[A-Za-zÀ-ɏ.])[\d' + MARKERS + r']+(?:,[\d' + MARKERS + r']+)*')
SUPERSCRIPT = re.compile(r'[' + MARKERS + r']')
NAME_TOKEN = re.compile(r"[A-ZÀ-Þ][a-zß-ÿ'’\-]+")

AFFILIATION_VOCABULARY = re.compile(
    r'\b(?:universit(?:y|ies|é|à|ät|ad|ade)|institute|institut|college|school|'
    r'department|dept|faculty|laborator(?:y|ies)|centre|center|academy|hospital|ministry|'
    r'foundation|corporation|inc|ltd|gmbh|research)\b',
    re.IGNORECASE,
)
AFFILIATION_LINE = re.compile(
    r'^[\d*†‡\s]*(?:'
    r'(?:Department|Dept\.|School|Faculty|Institute|Laboratory|Centre|Center|College|Division)\s+(?:of|for)\b'
    r'|University\s+of\b'
    r'|[A-Z][\w\s.&-]*\bUniversity\b\s*(?:,|$)'
    r')'
)
AFFILIATION_ADJACENT = re.compile(
    r"^(?P<name>[A-Z][\w.'’\-]*(?:\s+[A-Z][\w.'’\-]*){1,3})"
    r"\s*[.·•,|" + DASHES + r"-]\s+"
    r"(?P<affiliation>.*\b(?:University|Universit[éàä]|Institute|College|School|"
    r"Department|Centre|Center|Laboratory|Academy|Hospital)\b.*)$"
)

NAME_PARTICLES = {'de', 'da', 'del', 'della', 'di', 'do', 'dos', 'du', 'van', 'von', 'der', 'den',
                  'la', 'le', 'bin', 'ibn', 'al', 'y'}

PUBLISHER_STOPWORDS = {'and', 'the', 'a', 'an', 'of', 'in', 'on', 'for', 'to', 'by', 'with',
                       'this', 'that', 'all', 'its', 'our', 'their', 'these', 'is', 'are'}


def expand_ligatures(text):
    """Expand common typographic ligatures found in PDFs."""
    for lig, expanded in LIGATURES.items():
        text = text.replace(lig, expanded)
    return text


def pdf_lines(text):
    """Split page text into trimmed, whitespace-collapsed, non-empty lines."""
    lines = []
    for line in expand_ligatures(text or "").splitlines():
        line = re.sub(r'\s+', ' ', line).strip()
        if line:
            lines.append(line)
    return lines


# --- title -------------------------------------------------------------------

def is_section_heading(line):
    """'Abstract', '1. Introduction', 'Keywords:' or an inline 'Abstract We study ...' paragraph."""
    if SECTION_HEADING.match(line):
        return True
    return len(line) > 60 and bool(INLINE_ABSTRACT.match(line))


def is_letter_spaced(line):
    """Decorative letter-spacing such as 'J U N E 2 0 2 3'."""
    tokens = line.split()
    return len(tokens) >= 4 and all(len(t) == 1 for t in tokens)


def is_date_line(line):
    match = MONTH_YEAR_LINE.match(line)
    return bool(match) and match.group(1).lower() in MONTHS


def is_name_list(line):
    """Two or more 'First Last' names joined by commas or 'and'."""
    parts = [p for p in re.split(r'\s*(?:,|\band\b|&)\s*', line) if p]
    if len(parts) < 2:
        return False
    for part in parts:
        tokens = part.split()
        if not 2 <= len(tokens) <= 4:
            return False
        if not all(t[0].isupper() or t.lower() in NAME_PARTICLES for t in tokens):
            return False
    return not AFFILIATION_VOCABULARY.search(line)


def is_byline(line):
    """Footnoted multi-author line: 'Jane Smith1, Ali Khan2,3 and Bo Li1*'."""
    if ',' not in line:
        return False
    if len(NAME_TOKEN.findall(line)) < 3:
        return False
    return bool(FOOTNOTE_MARK.search(line) or SUPERSCRIPT.search(line) or ORCID.search(line))


def is_author_line(line):
    return bool(
        EXPLICIT_AUTHORS.match(line)
        or BY_PREFIX.match(line)
        or ACADEMIC_TITLE.search(line)
        or is_byline(line)
    )


def is_affiliation_line(line):
    return bool(AFFILIATION_LINE.match(line) or AFFILIATION_ADJACENT.match(line))


TITLE_RULES = [
    ('section-heading', is_section_heading, STOP),
    ('email', lambda line: bool(EMAIL.search(line)), BOUNDARY),
    ('letter-spaced', is_letter_spaced, SKIP),
    ('numeric-fragment', lambda line: bool(NUMERIC_FRAGMENT.match(line)), SKIP),
    ('document-label', lambda line: bool(DOCUMENT_LABEL.match(line)), SKIP),
    ('date-line', is_date_line, SKIP),
    ('author-line', is_author_line, BOUNDARY),
    ('affiliation-line', is_affiliation_line, BOUNDARY),
    ('name-list', is_name_list, CLOSE),
]


def classify_title_line(line):
    """Return (rule name, action) for one line; unmatched lines are taken."""
    for name, predicate, action in TITLE_RULES:
        if predicate(line):
            return name, action
    return 'text', TAKE


def guess_title(lines):
    """Accumulate title lines from the top of the first page.

    Joined with single spaces; a result longer than 200 characters is most
    likely body text, so only its first line is kept.
    """
    collected = []
    for line in lines[:TITLE_SCAN_LINES]:
        _, action = classify_title_line(line)
        if action == STOP:
            break
        if action == BOUNDARY:
            if collected:
                break
            continue
        if action == SKIP:
            continue
        if action == CLOSE and collected and not CONNECTIVE_END.search(collected[-1]):
            break
        collected.append(line.rstrip(MARKERS).strip())

    collected = [c for c in collected if c]
    if not collected:
        return None
    title = ' '.join(collected)
    if len(title) > MAX_TITLE_LENGTH:
        return collected[0]
    return title


# --- authors -----------------------------------------------------------------

def clean_name(name):
    """Strip honorifics, degrees, footnote markers and ORCID ids from a name."""
    name = ORCID.sub(' ', name)
    name = FOOTNOTE_MARK.sub('', name)
    name = SUPERSCRIPT.sub('', name)
    name = HONORIFICS.sub(' ', name)
    name = re.sub(r'\(.*?\)', ' ', name)
    return re.sub(r'\s+', ' ', name).strip(' ,.;:-')


def is_plausible_name(name):
    if not name or len(name) > 60:
        return False
    if re.search(r'\d|@', name) or AFFILIATION_VOCABULARY.search(name):
        return False
    words = name.split()
    if not 2 <= len(words) <= 5:
        return False
    if not (words[0][0].isupper() and words[-1][0].isupper()):
        return False
    return all(w[0].isupper() or w.lower() in NAME_PARTICLES for w in words)


def split_names(text):
    """Split 'A, B, and C' / 'A; B & C' into cleaned, plausible names."""
    names = []
    for part in re.split(r'\s*(?:;|,|\band\b|&)\s*', text):
        name = clean_name(part)
        if is_plausible_name(name):
            names.append(name)
    return names


def _is_name_continuation(line):
    tokens = [t for t in re.split(r'[,\s]+', line) if t]
    if not tokens:
        return False
    return all(t in ('and', '&') or t[0].isupper() or t.lower() in NAME_PARTICLES for t in tokens)


def _explicit_authors(window):
    for line in window:
        match = EXPLICIT_AUTHORS.match(line)
        if match:
            names = split_names(match.group(1))
            if names:
                return names
    return []


def _by_prefix_authors(window):
    for i, line in enumerate(window):
        match = BY_PREFIX.match(line)
        if not match:
            continue
        names = split_names(match.group(1))
        for follow in window[i + 1:]:
            if AFFILIATION_VOCABULARY.search(follow) or not _is_name_continuation(follow):
                break
            names.extend(split_names(follow))
        if names:
            return names
    return []


def _academic_title_authors(window):
    names = []
    for line in window:
        if ACADEMIC_TITLE.search(line):
            names.extend(split_names(line))
    return names


def _byline_authors(window):
    names = []
    for line in window:
        if is_byline(line):
            names.extend(split_names(line))
    return names


def _affiliation_adjacent_authors(window):
    names = []
    for line in window:
        match = AFFILIATION_ADJACENT.match(line)
        if match:
            name = clean_name(match.group('name'))
            if is_plausible_name(name):
                names.append(name)
            continue
        if names:
            break
    return names


AUTHOR_RULES = [
    ('explicit', _explicit_authors),
    ('by-prefix', _by_prefix_authors),
    ('academic-title', _academic_title_authors),
    ('byline', _byline_authors),
    ('affiliation-adjacent', _affiliation_adjacent_authors),
]


def guess_authors(lines):
    """Names found on lines 2-15 by the first AUTHOR_RULES entry that yields any."""
    window = lines[AUTHOR_SCAN]
    for _, rule in AUTHOR_RULES:
        names = rule(window)
        if names:
            return _dedupe(names)
    return []


def _dedupe(names):
    seen = set()
    unique = []
    for name in names:
        if name.lower() not in seen:
            seen.add(name.lower())
            unique.append(name)
    return unique


# --- year --------------------------------------------------------------------

EXPLICIT_DATE = re.compile(
    r'\b(?:published|date|issued|received|accepted)\b[^\n]{0,40}?\b((?:19|20)\d{2})\b',
    re.IGNORECASE,
)
MONTH_YEAR = re.compile(r'\b([A-Z][A-Za-z]{2,8})\.?\s+(?:\d{1,2}(?:st|nd|rd|th)?,?\s+)?((?:19|20)\d{2})\b')
COPYRIGHT_YEAR = re.compile(r'(?:©|\(c\)|\bcopyright\b)\s*(?:©\s*)?((?:19|20)\d{2})\b', re.IGNORECASE)
STANDALONE_YEAR = re.compile(r'^((?:19|20)\d{2})$')


def _plausible_year(value):
    year = int(value)
    return 1900 <= year <= datetime.date.today().year + 1


def _explicit_date_year(text, lines):
    for match in EXPLICIT_DATE.finditer(text):
        if _plausible_year(match.group(1)):
            return int(match.group(1))
    return None


def _month_year(text, lines):
    for match in MONTH_YEAR.finditer(text):
        if match.group(1).lower() in MONTHS and _plausible_year(match.group(2)):
            return int(match.group(2))
    return None


def _copyright_year(text, lines):
    for match in COPYRIGHT_YEAR.finditer(text):
        if _plausible_year(match.group(1)):
            return int(match.group(1))
    return None


def _standalone_year(text, lines):
    for line in lines[:YEAR_STANDALONE_LINES]:
        match = STANDALONE_YEAR.match(line)
        if match and _plausible_year(match.group(1)):
            return int(match.group(1))
    return None


YEAR_RULES = [
    ('explicit-date', _explicit_date_year),
    ('month-year', _month_year),
    ('copyright', _copyright_year),
    ('standalone-line', _standalone_year),
]


def guess_year(lines):
    text = '\n'.join(lines)
    for _, rule in YEAR_RULES:
        year = rule(text, lines)
        if year:
            return year
    return None


# --- publisher ---------------------------------------------------------------

PUBLISHER_PATTERNS = [
    re.compile(r'\b(?:published|produced|prepared|issued)\s+by\s+(?:the\s+)?([^.]+)\.', re.IGNORECASE),
    re.compile(r'©\s*(?:19|20)\d{2}\s*,?\s*(?:by\s+)?([^.]+)\.'),
    re.compile(r'\bcopyright\s*(?:©\s*)?(?:(?:19|20)\d{2}\s*,?\s*)?(?:by\s+)?([^.]+)\.', re.IGNORECASE),
]


def is_plausible_publisher(candidate):
    if not 5 <= len(candidate) <= 80:
        return False
    if ';' in candidate or ' ' not in candidate:
        return False
    return candidate.split()[0].lower() not in PUBLISHER_STOPWORDS


def guess_publisher(lines):
    text = ' '.join(lines)
    for pattern in PUBLISHER_PATTERNS:
        for match in pattern.finditer(text):
            candidate = match.group(1).strip(' ,')
            if is_plausible_publisher(candidate):
                return candidate
    return None


# --- abstract ----------------------------------------------------------------

ABSTRACT_HEADING = re.compile(r'^abstract\s*(?:$|[:.' + DASHES + r'-]\s*)', re.IGNORECASE)
ABSTRACT_END = re.compile(
    r'^(?:\d+\.?\s*|I\.\s*)?(?:introduction|keywords?|key\s+words|index\s+terms|ccs\s+concepts)\b',
    re.IGNORECASE,
)


def guess_abstract(lines):
    """Text between an 'Abstract' heading and the next section marker."""
    for i, line in enumerate(lines):
        match = ABSTRACT_HEADING.match(line) or INLINE_ABSTRACT.match(line)
        if not match:
            continue
        parts = [line[match.end():]]
        for follow in lines[i + 1:]:
            if ABSTRACT_END.match(follow):
                break
            parts.append(follow)
        abstract = ' '.join(p for p in parts if p)
        abstract = re.sub(r'(\w)- (\w)', r'\1\2', abstract)
        if len(abstract) < 40:
            return None
        return abstract[:MAX_ABSTRACT_LENGTH]
    return None


def extract_metadata(text):
    """Run every heuristic over early-page text; missing fields are None."""
    lines = pdf_lines(text)
    return {
        'title': guess_title(lines),
        'authors': guess_authors(lines),
        'year': guess_year(lines),
        'publisher': guess_publisher(lines),
        'abstract': guess_abstract(lines),
    }
