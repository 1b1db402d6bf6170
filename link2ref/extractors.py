"""Turn a fetched HTML page or PDF into a canonical record.

HTML pages are read through their metadata tags (Highwire ``citation_*``,
Dublin Core, Open Graph, Twitter cards) with JSON-LD as a fallback. PDFs go
through PyMuPDF text extraction, an optional AI suggester and the rule tables
in ``pdf_heuristics``.
"""

import datetime
import json
import logging
import re

from bs4 import BeautifulSoup
from rapidfuzz import fuzz

from link2ref import pdf_heuristics
from link2ref.csl import base_item, normalize_text, normalize_title
from link2ref.errors import ExtractionEmpty, ProviderUnavailable
from link2ref.identifiers import extract_doi
from link2ref.registries import fetch_doi_csl

logger = logging.getLogger(__name__)

PDF_MAX_PAGES = 2
# Characters of early-page text searched for a DOI and compared against its registry title
PDF_EARLY_TEXT = 3000
TITLE_MATCH_THRESHOLD = 90

JSON_LD_TYPES = {'Article', 'NewsArticle', 'WebPage', 'BlogPosting', 'ScholarlyArticle',
                 'Report', 'TechArticle', 'Review', 'AnalysisNewsArticle', 'ReportageNewsArticle'}


# --- HTML --------------------------------------------------------------------

def _meta_pattern(name):
    return re.compile(f'^{re.escape(name)}$', re.IGNORECASE)


def pick_meta(soup, *names):
    """Content of the first meta tag whose name or property matches, in priority order."""
    for name in names:
        for attr in ('name', 'property'):
            tag = soup.find('meta', attrs={attr: _meta_pattern(name)})
            if tag is not None and normalize_text(tag.get('content')):
                return normalize_text(tag.get('content'))
    return None


def meta_values(soup, name):
    """Contents of every meta tag called ``name``, in document order."""
    values = []
    for tag in soup.find_all('meta', attrs={'name': _meta_pattern(name)}):
        content = normalize_text(tag.get('content'))
        if content:
            values.append(content)
    return values


def _is_url(value):
    return bool(re.match(r'^https?://', value or '', re.IGNORECASE))


def extract_json_ld(soup):
    """First article-like JSON-LD object on the page, or None."""
    for script in soup.find_all('script', type='application/ld+json'):
        try:
            data = json.loads(script.string or '')
        except (json.JSONDecodeError, TypeError):
            continue

        candidates = []
        if isinstance(data, dict):
            candidates = data.get('@graph') if isinstance(data.get('@graph'), list) else [data]
        elif isinstance(data, list):
            candidates = data

        for item in candidates:
            if not isinstance(item, dict):
                continue
            types = item.get('@type')
            types = types if isinstance(types, list) else [types]
            if any(t in JSON_LD_TYPES for t in types):
                return item
    return None


def _json_ld_name(value):
    if isinstance(value, dict):
        return normalize_text(value.get('name'))
    if isinstance(value, str):
        return normalize_text(value)
    return ""


def json_ld_authors(data):
    author = data.get('author')
    if not author:
        return []
    entries = author if isinstance(author, list) else [author]
    names = [_json_ld_name(a) for a in entries]
    return [n for n in names if n and not _is_url(n)]


def html_authors(soup, json_ld):
    """All citation_author tags, else the first generic author tag, else JSON-LD."""
    authors = meta_values(soup, 'citation_author')
    if authors:
        return "; ".join(authors)
    for name in ('dc.creator', 'author', 'article:author'):
        value = pick_meta(soup, name)
        # article:author is often a profile URL
        if value and not _is_url(value):
            return value
    if json_ld:
        names = json_ld_authors(json_ld)
        if names:
            return names
    return None


def html_doi(soup):
    """A DOI declared by the page's own metadata, if any."""
    for name in ('citation_doi', 'prism.doi', 'dc.identifier'):
        doi = extract_doi(pick_meta(soup, name))
        if doi:
            return doi
    return None


def parse_html_to_csl(url, content, config):
    """Build a record from an HTML page's metadata.

    When the page declares its own DOI the registry record wins; metadata
    scraping is only the fallback for a failed lookup.
    """
    soup = BeautifulSoup(content, 'html.parser')

    doi = html_doi(soup)
    if doi:
        try:
            logger.debug(f"Page declares DOI {doi}, trying registry")
            return fetch_doi_csl(doi, config)
        except ProviderUnavailable as e:
            logger.info(f"Registry lookup for page DOI {doi} failed: {e}")

    json_ld = extract_json_ld(soup)
    page_title = soup.title.get_text() if soup.title else None

    title = (
        pick_meta(soup, 'citation_title', 'dc.title', 'og:title', 'twitter:title')
        or (json_ld and _json_ld_name(json_ld.get('headline') or json_ld.get('name')))
        or page_title
    )
    issued = pick_meta(soup, 'citation_publication_date', 'article:published_time',
                       'article:modified_time', 'dc.date', 'date')
    if not issued and json_ld:
        issued = json_ld.get('datePublished') or json_ld.get('dateCreated')

    site_name = pick_meta(soup, 'og:site_name')
    publisher = site_name or pick_meta(soup, 'citation_publisher', 'dc.publisher')
    if not publisher and json_ld:
        publisher = _json_ld_name(json_ld.get('publisher'))

    og_type = pick_meta(soup, 'og:type')

    return base_item(
        id_prefix='web',
        type='article-newspaper' if og_type and og_type.lower() == 'article' else 'webpage',
        title=title,
        author=html_authors(soup, json_ld),
        issued=issued,
        accessed=datetime.date.today().isoformat(),
        URL=url,
        DOI=doi,
        container_title=pick_meta(soup, 'citation_journal_title') or site_name,
        publisher=publisher,
        abstract=pick_meta(soup, 'description', 'og:description', 'dc.description', 'citation_abstract'),
    )


# --- PDF ---------------------------------------------------------------------

def extract_text_from_pdf(content, max_pages=PDF_MAX_PAGES):
    """Extract text from the first pages of a PDF using PyMuPDF."""
    import fitz
    try:
        doc = fitz.open(stream=content, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise ExtractionEmpty(f'Unreadable PDF: {e}')
    try:
        text = "\n".join(doc[i].get_text() for i in range(min(max_pages, doc.page_count)))
    finally:
        doc.close()
    # Expand typographic ligatures (ﬁ → fi, ﬂ → fl, etc.)
    text = pdf_heuristics.expand_ligatures(text)
    if not text.strip():
        raise ExtractionEmpty('No text layer in PDF')
    return text


def registry_title_matches(record, early_text):
    """True when the registry title appears (fuzzily) in the PDF's early text."""
    title = normalize_title(record.get('title') or '')
    if len(title) < 10:
        return False
    return fuzz.partial_ratio(title, normalize_title(early_text)) >= TITLE_MATCH_THRESHOLD


def _pdf_doi_record(doi, early_text, config):
    """Registry record for a DOI found in the PDF, if it is this document's own."""
    try:
        record = fetch_doi_csl(doi, config)
    except ProviderUnavailable as e:
        logger.info(f"Registry lookup for PDF DOI {doi} failed: {e}")
        return None, True
    if registry_title_matches(record, early_text):
        return record, True
    logger.info(f"DOI {doi} in PDF text belongs to another work ({record.get('title', '')[:50]})")
    return None, False


def parse_pdf_to_csl(url, content, config, suggester=None):
    """Build a record for a PDF from its first pages.

    Order of preference: the registry record for a DOI printed near the top
    (when its title matches), an AI suggestion, the regex heuristics.
    """
    try:
        text = extract_text_from_pdf(content)
    except ExtractionEmpty as e:
        logger.warning(f"{e}: {url}")
        text = ""

    early_text = text[:PDF_EARLY_TEXT]
    doi = extract_doi(early_text)
    if doi:
        record, own_doi = _pdf_doi_record(doi, early_text, config)
        if record:
            return record
        if not own_doi:
            doi = None

    fields = pdf_heuristics.extract_metadata(text)
    authors = fields['authors']
    document_type = 'report'

    suggestion = suggester.suggest(text) if (suggester and text) else None
    if suggestion:
        logger.debug(f"Using AI metadata for {url}")
        for key in ('title', 'year', 'publisher', 'abstract'):
            if suggestion.get(key):
                fields[key] = suggestion[key]
        if suggestion.get('authors'):
            authors = suggestion['authors']
        document_type = suggestion.get('type') or document_type

    return base_item(
        id_prefix='pdf',
        type=document_type,
        title=fields['title'],
        author=authors,
        issued=fields['year'],
        URL=url,
        DOI=doi,
        publisher=fields['publisher'],
        abstract=fields['abstract'],
        placeholder_title="Untitled PDF Report",
    )
