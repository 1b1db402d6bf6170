"""Canonical bibliographic records (CSL-JSON dictionaries).

A record looks like what the DOI registry returns for
``Accept: application/vnd.citationstyles.csl+json``::

    {
        "id": "web-3k9x0a1b",
        "type": "webpage",
        "title": "...",
        "author": [{"family": "Smith", "given": "Jane"}, {"literal": "World Bank"}],
        "issued": {"date-parts": [[2025, 6, 5]]},
        "accessed": {"date-parts": [[2026, 10, 19]]},
        "URL": "...", "DOI": "...",
        "container-title": "...", "publisher": "...", "abstract": "...",
    }

Optional keys are left out rather than set to None.
"""

import html
import re
import unicodedata
import uuid

WORK_TYPES = ('webpage', 'article-newspaper', 'article-journal', 'report', 'book', 'thesis')

INSTITUTIONAL_KEYWORDS = re.compile(
    r'\b(organization|organisation|commission|committee|institute|institution|foundation|'
    r'association|ministry|department|agency|council|authority|bureau|office|fund|bank|'
    r'university|college|school|corporation|company|group|center|centre|network|program|'
    r'programme|project|service|society|academy|board|division|government|federation|'
    r'laboratory|observatory|trust|union)\b',
    re.IGNORECASE,
)

AUTHOR_SEPARATORS = re.compile(r'\s+(?:and|&)\s+|\s*;\s*|\s*\|\s*', re.IGNORECASE)

ISO_DATE = re.compile(r'^(\d{4})[-/](\d{1,2})[-/](\d{1,2})')
ISO_YEAR_MONTH = re.compile(r'^(\d{4})[-/](\d{1,2})$')
BARE_YEAR = re.compile(r'\b(\d{4})\b')


def normalize_text(value):
    """Collapse internal whitespace and trim; None/empty -> ''."""
    if not value:
        return ""
    return re.sub(r'\s+', ' ', str(value)).strip()


def normalize_title(title):
    """Normalize title for comparison - keep only lowercase alphanumerics."""
    title = html.unescape(str(title))
    title = unicodedata.normalize("NFKD", title)
    title = title.encode("ascii", "ignore").decode("ascii")
    title = re.sub(r'[^a-zA-Z0-9]', '', title)
    return title.lower()


def is_institutional_name(name):
    """True for organisation names and all-caps acronyms (WHO, IMF, UNESCO)."""
    if INSTITUTIONAL_KEYWORDS.search(name) or '&' in name:
        return True
    return bool(re.match(r'^[A-Z]{3,}$', name.strip()))


def parse_name(name):
    """Classify one name string as personal ({family, given}) or institutional ({literal}).

    Returns None for names that normalize to nothing.
    """
    name = normalize_text(name).strip(' ,')
    if not name:
        return None

    if is_institutional_name(name):
        return {'literal': name}

    if ',' in name:
        family, _, given = name.partition(',')
        family = normalize_text(family)
        given = normalize_text(given)
        if not family:
            return {'literal': given} if given else None
        if not given:
            return {'literal': family}
        return {'family': family, 'given': given}

    parts = name.split(' ')
    if len(parts) == 1:
        return {'literal': parts[0]}
    return {'given': ' '.join(parts[:-1]), 'family': parts[-1]}


def split_authors(value):
    """Turn an author field into an ordered list of CSL name dicts.

    Accepts a combined string ("Jane Smith; John Doe", "A and B", "A | B"),
    a list of name strings, or a list of already-structured name dicts.
    Empty names are dropped, never emitted.
    """
    if not value:
        return []

    if isinstance(value, str):
        candidates = [normalize_text(v) for v in AUTHOR_SEPARATORS.split(value)]
    else:
        candidates = []
        for entry in value:
            if isinstance(entry, dict):
                cleaned = {k: normalize_text(v) for k, v in entry.items()
                           if k in ('family', 'given', 'literal') and normalize_text(v)}
                if cleaned.get('family') or cleaned.get('literal'):
                    candidates.append(cleaned)
                elif cleaned.get('given'):
                    candidates.append({'literal': cleaned['given']})
            else:
                candidates.append(normalize_text(entry))

    authors = []
    for candidate in candidates:
        if isinstance(candidate, dict):
            authors.append(candidate)
            continue
        parsed = parse_name(candidate)
        if parsed:
            authors.append(parsed)
    return authors


def _date_parts(year, month=None, day=None):
    """Widest well-formed prefix of (year, month, day)."""
    parts = [year]
    if month is not None and 1 <= month <= 12:
        parts.append(month)
        if day is not None and 1 <= day <= 31:
            parts.append(day)
    return parts


def parse_date(value):
    """Parse a date into CSL ``{"date-parts": [[y, m?, d?]]}`` or None.

    Preference order: ISO ``YYYY-MM-DD`` (time suffix ignored), ISO ``YYYY-MM``,
    then any bare 4-digit year in the text. ``/`` works as a separator too
    (Highwire ``citation_publication_date``). Already-parsed CSL dates, ints
    and [y, m, d] lists are accepted too.
    """
    if value is None or value == "":
        return None

    if isinstance(value, dict):
        parts = value.get('date-parts')
        parsed = None
        if isinstance(parts, (list, tuple)) and parts and isinstance(parts[0], (list, tuple)):
            parsed = parse_date(list(parts[0]))
        if parsed is None and value.get('raw'):
            return parse_date(value['raw'])
        return parsed

    if isinstance(value, (list, tuple)):
        # Registries send [[null]] or [[2020, null]] for unknown parts
        numbers = []
        for v in value[:3]:
            try:
                numbers.append(int(v))
            except (TypeError, ValueError):
                break
        if not numbers:
            return None
        return {'date-parts': [_date_parts(*numbers)]}

    if isinstance(value, int):
        return {'date-parts': [[value]]}

    text = str(value).strip()

    match = ISO_DATE.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return {'date-parts': [_date_parts(year, month, day)]}

    match = ISO_YEAR_MONTH.match(text)
    if match:
        year, month = (int(g) for g in match.groups())
        return {'date-parts': [_date_parts(year, month)]}

    match = BARE_YEAR.search(text)
    if not match:
        return None
    return {'date-parts': [[int(match.group(1))]]}


def format_date(date):
    """Serialize a CSL date to ``YYYY``, ``YYYY-MM`` or ``YYYY-MM-DD``."""
    parts = date_parts(date)
    if not parts:
        return ""
    return "-".join([f"{parts[0]:04d}"] + [f"{p:02d}" for p in parts[1:]])


def date_parts(date):
    """The [y, m?, d?] list of a CSL date, or [] when absent."""
    if not date:
        return []
    parsed = parse_date(date) if isinstance(date, dict) else None
    if not parsed:
        return []
    return parsed['date-parts'][0]


def make_id(prefix="ref"):
    """Opaque record id: ``<prefix>-<8 random alphanumerics>``."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def base_item(id=None, type="webpage", title=None, author=None, issued=None, accessed=None,
              URL=None, DOI=None, container_title=None, publisher=None, abstract=None,
              id_prefix="ref", placeholder_title="Untitled"):
    """Build a canonical record from loosely-typed extracted fields."""
    item = {
        'id': id or make_id(id_prefix),
        'type': type if type in WORK_TYPES else 'webpage',
        'title': normalize_text(html.unescape(title)) if title else "",
    }
    if not item['title']:
        item['title'] = placeholder_title

    authors = split_authors(author)
    if authors:
        item['author'] = authors

    parsed_issued = parse_date(issued)
    if parsed_issued:
        item['issued'] = parsed_issued

    parsed_accessed = parse_date(accessed)
    if parsed_accessed:
        item['accessed'] = parsed_accessed

    if URL:
        item['URL'] = URL
    if DOI:
        item['DOI'] = DOI
    if normalize_text(container_title):
        item['container-title'] = normalize_text(html.unescape(container_title))
    if normalize_text(publisher):
        item['publisher'] = normalize_text(html.unescape(publisher))
    if normalize_text(abstract):
        item['abstract'] = normalize_text(html.unescape(abstract))

    return item


def first_text(value):
    """CSL fields such as title/container-title may arrive as lists."""
    if isinstance(value, list):
        value = value[0] if value else ""
    return normalize_text(value)
