"""Classify raw user input and pull DOI / arXiv identifiers out of locators."""

import re
import urllib.parse

from link2ref.errors import InvalidInput

DOI_RESOLVER = "https://doi.org/"
ARXIV_DOI_PREFIX = "10.48550/arXiv."

DOI_PATTERN = re.compile(r'10\.\d{4,9}/[-._;()/:A-Z0-9]+', re.IGNORECASE)
BARE_DOI = re.compile(r'^10\.\d{4,9}/\S+$')
DOI_RESOLVER_URL = re.compile(r'^https?://(?:dx\.)?doi\.org/', re.IGNORECASE)

# arxiv.org/abs/2301.12345v2, /pdf/2301.12345v2(.pdf), /html/2301.12345v1, old hep-th/9901001 ids
ARXIV_URL = re.compile(
    r'^https?://(?:www\.|export\.)?arxiv\.org/(?:abs|pdf|html)/'
    r'((?:\d{4}\.\d{4,5}|[a-z][a-z.-]*/\d{7})(?:v\d+)?)',
    re.IGNORECASE,
)


def normalize_input(raw):
    """Turn a raw user string into a fetchable locator.

    First match wins:
    - http(s) URL -> unchanged
    - ``doi:10.x/y`` -> https://doi.org/10.x/y
    - bare ``10.x/y`` -> https://doi.org/10.x/y
    - anything else -> prefixed with https://

    Raises InvalidInput("Empty input") for empty or whitespace-only input.
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        raise InvalidInput("Empty input")
    if re.match(r'^https?://', trimmed, re.IGNORECASE):
        return trimmed
    if re.match(r'^doi:', trimmed, re.IGNORECASE):
        return DOI_RESOLVER + trimmed[4:].strip()
    if BARE_DOI.match(trimmed):
        return DOI_RESOLVER + trimmed
    return "https://" + trimmed


def extract_doi(text):
    """Return the first DOI found in free text, or None.

    Trailing sentence punctuation is not part of a DOI and is dropped.
    """
    if not text:
        return None
    match = DOI_PATTERN.search(text)
    if not match:
        return None
    doi = match.group(0).rstrip('.,;:')
    # An unbalanced closing paren belongs to the surrounding text: "(doi 10.1/x)"
    while doi.endswith(')') and doi.count('(') < doi.count(')'):
        doi = doi[:-1]
    return doi


def extract_doi_from_url(url):
    """Find a DOI in a URL's path, query or fragment after percent-decoding.

    Publisher URLs often carry the DOI escaped (``10.1000%2Fabc``).
    """
    if not url:
        return None
    try:
        parsed = urllib.parse.urlsplit(url)
    except ValueError:
        return extract_doi(url)
    tail = parsed.path
    if parsed.query:
        tail += "?" + parsed.query
    if parsed.fragment:
        tail += "#" + parsed.fragment
    return extract_doi(urllib.parse.unquote(tail))


def is_doi_resolver_url(url):
    return bool(url and DOI_RESOLVER_URL.match(url))


def doi_from_resolver_url(url):
    """``https://doi.org/10.1/x`` -> ``10.1/x``; other strings pass through as DOIs."""
    doi = DOI_RESOLVER_URL.sub('', url.strip())
    doi = re.sub(r'^doi:', '', doi, flags=re.IGNORECASE)
    return urllib.parse.unquote(doi)


def extract_arxiv_id(url):
    """Return the arXiv id (with version, if present) of an arXiv abs/pdf/html URL."""
    if not url:
        return None
    match = ARXIV_URL.match(url.strip())
    if not match:
        return None
    arxiv_id = match.group(1)
    if arxiv_id.lower().endswith('.pdf'):
        arxiv_id = arxiv_id[:-4]
    return arxiv_id


def strip_arxiv_version(arxiv_id):
    return re.sub(r'v\d+$', '', arxiv_id)


def arxiv_doi(arxiv_id):
    """The DataCite DOI arXiv assigns to every submission: 10.48550/arXiv.<id>."""
    return ARXIV_DOI_PREFIX + strip_arxiv_version(arxiv_id)
