"""Render canonical records into citation styles.

``csl_json`` returns the records untouched. Prose styles (``apa``, ``abnt``)
ask the DOI registry for a pre-rendered entry when the record has a DOI and
fall back to the local templates below. Records are rendered concurrently
through ``pool.run_in_order`` so ``output[i]`` always belongs to
``records[i]``.
"""

import datetime
import logging
import re

from link2ref.config import Config
from link2ref.csl import date_parts, normalize_text
from link2ref.errors import Cancelled, FormattingFailed, ProviderUnavailable
from link2ref.identifiers import DOI_RESOLVER, extract_doi
from link2ref.pool import run_in_order
from link2ref.registries import fetch_doi_bibliography

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = {
    'CSL_JSON': 'csl_json',
    'APA': 'apa',
    'ABNT': 'abnt',
}

STYLE_LABELS = {
    'apa': 'APA',
    'abnt': 'ABNT',
}

ENGLISH_MONTHS = ['January', 'February', 'March', 'April', 'May', 'June', 'July',
                  'August', 'September', 'October', 'November', 'December']

PORTUGUESE_MONTHS = ['jan.', 'fev.', 'mar.', 'abr.', 'maio', 'jun.', 'jul.',
                     'ago.', 'set.', 'out.', 'nov.', 'dez.']

APA_MAX_AUTHORS = 20
ABNT_MAX_AUTHORS = 3

# Types whose APA date carries month and day when known
DATED_TYPES = ('webpage', 'article-newspaper')


def normalize_format(value, config=None):
    """Map a requested style name onto a supported one (default on anything unknown)."""
    value = str(value or "").lower().strip()
    if value in OUTPUT_FORMATS.values():
        return value
    default = (config or Config.from_env()).default_style
    return default if default in OUTPUT_FORMATS.values() else OUTPUT_FORMATS['CSL_JSON']


def output_type_for(style):
    return 'json' if style == OUTPUT_FORMATS['CSL_JSON'] else 'text'


def record_doi(item):
    """DOI of a record: its DOI field, else a DOI inside its URL."""
    if not item:
        return None
    if item.get('DOI'):
        return str(item['DOI'])
    if item.get('doi'):
        return str(item['doi'])
    return extract_doi(item.get('URL') or item.get('url'))


def _link(item):
    doi = record_doi(item)
    if doi:
        return DOI_RESOLVER + doi
    return item.get('URL') or item.get('url')


def _sentence(text):
    """Text terminated with a period unless it already ends in punctuation."""
    text = normalize_text(text)
    if not text:
        return ""
    return text if text[-1] in '.?!' else text + '.'


def _initials(given):
    """'Jean-Paul Marie' -> 'J.-P. M.'"""
    initials = []
    for part in given.split():
        pieces = [p for p in part.split('-') if p]
        initials.append('-'.join(p[0].upper() + '.' for p in pieces))
    return ' '.join(initials)


# --- APA ---------------------------------------------------------------------

def apa_name(name):
    if name.get('literal'):
        return name['literal']
    family = name.get('family', '')
    given = name.get('given', '')
    return f"{family}, {_initials(given)}" if given else family


def apa_authors(authors):
    names = [apa_name(a) for a in authors]
    names = [n for n in names if n]
    if not names:
        return ""
    if len(names) == 1:
        return names[0]
    if len(names) > APA_MAX_AUTHORS:
        return ", ".join(names[:APA_MAX_AUTHORS - 1]) + ", . . . " + names[-1]
    return ", ".join(names[:-1]) + ", & " + names[-1]


def apa_date(item):
    parts = date_parts(item.get('issued'))
    if not parts:
        return "n.d."
    text = str(parts[0])
    if item.get('type') in DATED_TYPES and len(parts) >= 2:
        text += f", {ENGLISH_MONTHS[parts[1] - 1]}"
        if len(parts) == 3:
            text += f" {parts[2]}"
    return text


def render_apa(item):
    """Local APA (7th ed.) reference entry.

    ``Family, G. I., & Family, G. (Year, Month Day). Title. Container. Link``
    """
    title = normalize_text(item.get('title')) or "Untitled"
    authors = apa_authors(item.get('author') or [])
    date = f"({apa_date(item)})."

    if authors:
        parts = [_sentence(authors), date, _sentence(title)]
    else:
        # Title moves into the author position
        parts = [_sentence(title), date]

    container = normalize_text(item.get('container-title'))
    publisher = normalize_text(item.get('publisher'))
    if container:
        parts.append(_sentence(container))
    elif publisher and publisher not in authors:
        parts.append(_sentence(publisher))

    link = _link(item)
    if link:
        parts.append(link)
    return " ".join(parts)


# --- ABNT --------------------------------------------------------------------

def abnt_name(name):
    if name.get('literal'):
        return name['literal'].upper()
    family = name.get('family', '').upper()
    given = name.get('given', '')
    return f"{family}, {given}" if given else family


def abnt_authors(authors):
    names = [abnt_name(a) for a in authors]
    names = [n for n in names if n]
    if len(names) > ABNT_MAX_AUTHORS:
        return f"{names[0]} et al"
    return "; ".join(names)


def abnt_access_date(item, today=None):
    """'Acesso em: 5 jun. 2025' from the record's accessed date (today when missing)."""
    parts = date_parts(item.get('accessed'))
    if len(parts) < 3:
        today = today or datetime.date.today()
        parts = [today.year, today.month, today.day]
    year, month, day = parts[:3]
    return f"Acesso em: {day} {PORTUGUESE_MONTHS[month - 1]} {year}"


def render_abnt(item, today=None):
    """Local ABNT (NBR 6023) reference entry.

    ``FAMILY, Given; FAMILY, Given. Title. Container, Year. Disponível em: URL. Acesso em: 5 jun. 2025.``
    """
    title = normalize_text(item.get('title')) or "Untitled"
    authors = abnt_authors(item.get('author') or [])
    parts = []
    if authors:
        parts.append(_sentence(authors))
    parts.append(_sentence(title))

    issued = date_parts(item.get('issued'))
    year = str(issued[0]) if issued else "[s. d.]"
    source = normalize_text(item.get('container-title')) or normalize_text(item.get('publisher'))
    parts.append(f"{source}, {year}." if source else f"{year}.")

    link = _link(item)
    if link:
        parts.append(f"Disponível em: {link}.")
        parts.append(abnt_access_date(item, today) + ".")
    return " ".join(parts)


LOCAL_RENDERERS = {
    'apa': render_apa,
    'abnt': render_abnt,
}


def registry_style(style, config):
    """(style, locale) sent to the DOI registry's bibliography endpoint."""
    if style == OUTPUT_FORMATS['ABNT']:
        return 'associacao-brasileira-de-normas-tecnicas', 'pt-BR'
    return 'apa', config.locale


def render_local(item, style):
    try:
        return LOCAL_RENDERERS[style](item)
    except (KeyError, TypeError, ValueError, IndexError, AttributeError) as e:
        raise FormattingFailed(f'{STYLE_LABELS.get(style, style)} rendering failed: {e}')


def render_record(item, style, config, cancel_event=None):
    """Registry-rendered text for records with a DOI, the local template otherwise."""
    doi = record_doi(item)
    if doi:
        name, locale = registry_style(style, config)
        try:
            return fetch_doi_bibliography(doi, name, config, locale=locale, cancel_event=cancel_event)
        except ProviderUnavailable as e:
            logger.info(f"Registry {style} rendering for {doi} failed, rendering locally: {e}")
    return render_local(item, style)


def placeholder(item, style):
    label = STYLE_LABELS.get(style, style.upper())
    title = (item or {}).get('title') or (item or {}).get('URL') or (item or {}).get('id') or "Untitled"
    return f"[{label} formatting failed] {title}"


def format_output(records, style, config=None, cancel_event=None):
    """Render ``records`` in ``style``; one entry per record, in input order.

    A record that cannot be rendered yields a marked placeholder string. When
    the batch is cancelled, entries not rendered by then are None.
    """
    config = config or Config.from_env()
    style = normalize_format(style, config)
    records = list(records or [])
    if style == OUTPUT_FORMATS['CSL_JSON']:
        return records

    def render(index, item):
        try:
            return render_record(item, style, config, cancel_event)
        except Cancelled:
            return None
        except FormattingFailed as e:
            logger.warning(f"Record {index}: {e}")
            return placeholder(item, style)

    return run_in_order(records, render, config.max_concurrent_renders, cancel_event)
