"""Thin clients for the DOI registry (content negotiation) and the arXiv API.

Each lookup returns a canonical record / rendered text, or raises
ProviderUnavailable describing why the registry could not answer. Passing a
``cancel_event`` stops a lookup before it starts or between body chunks.
"""

import html
import json
import logging

import feedparser
import requests

from link2ref.csl import base_item, first_text, make_id, parse_date, split_authors
from link2ref.errors import Cancelled, ProviderUnavailable
from link2ref.fetcher import read_body
from link2ref.identifiers import DOI_RESOLVER, arxiv_doi, extract_doi

logger = logging.getLogger(__name__)

CSL_JSON = "application/vnd.citationstyles.csl+json"
ARXIV_API = "https://export.arxiv.org/api/query"


def _get(url, config, accept, what, params=None, timeout=None, cancel_event=None):
    """GET with the configured identity and return the body bytes.

    Transport failures and non-2xx answers become ProviderUnavailable.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise Cancelled('Cancelled')
    try:
        response = requests.get(
            url,
            params=params,
            headers=config.headers(accept),
            timeout=timeout or config.registry_timeout,
            allow_redirects=True,
            stream=True,
        )
    except requests.exceptions.Timeout:
        raise ProviderUnavailable(f'{what} timed out')
    except requests.exceptions.RequestException as e:
        raise ProviderUnavailable(f'{what} failed: {e}')

    if response.status_code == 429:
        response.close()
        raise ProviderUnavailable('Rate limited (429)', status=429)
    if not 200 <= response.status_code < 300:
        status = response.status_code
        response.close()
        raise ProviderUnavailable(f'{what} failed ({status})', status=status)
    return read_body(response, cancel_event, what=what)


def normalize_registry_item(data, doi=None):
    """Tidy a registry CSL item without discarding the extra keys it carries.

    ``doi`` is the DOI that was looked up; it replaces the registry's spelling
    when the two differ only in case (DataCite upper-cases arXiv DOIs).
    """
    item = dict(data)
    item['id'] = item.get('id') or make_id('doi')
    item['title'] = first_text(item.get('title')) or "Untitled"
    for key in ('container-title', 'publisher', 'abstract'):
        if key in item:
            value = first_text(item[key])
            if value:
                item[key] = value
            else:
                del item[key]
    if 'author' in item:
        authors = split_authors(item['author'] if isinstance(item['author'], list) else [])
        if authors:
            item['author'] = authors
        else:
            del item['author']
    for key in ('issued', 'accessed'):
        if key in item:
            parsed = parse_date(item[key])
            if parsed:
                item[key] = parsed
            else:
                del item[key]
    registry_doi = item.get('DOI')
    if doi and (not registry_doi or str(registry_doi).lower() == doi.lower()):
        item['DOI'] = doi
    if item.get('DOI') and not item.get('URL'):
        item['URL'] = DOI_RESOLVER + item['DOI']
    return item


def fetch_doi_csl(doi, config, cancel_event=None):
    """Look up the CSL-JSON record for a DOI via https://doi.org content negotiation."""
    if not doi:
        raise ProviderUnavailable('No DOI provided')

    logger.debug(f"DOI lookup: {doi}")
    body = _get(f"{DOI_RESOLVER}{doi}", config, CSL_JSON, 'DOI lookup', cancel_event=cancel_event)
    try:
        data = json.loads(body.decode('utf-8', errors='replace'))
    except ValueError as e:
        raise ProviderUnavailable(f'Failed to parse DOI metadata: {e}')
    if not isinstance(data, dict):
        raise ProviderUnavailable('Failed to parse DOI metadata: not an object')
    return normalize_registry_item(data, doi=doi)


def fetch_doi_bibliography(doi, style, config, locale=None, cancel_event=None):
    """Ask the DOI registry for a pre-rendered bibliography entry in ``style``.

    HTML character entities in the answer are decoded.
    """
    accept = f"text/x-bibliography; style={style}"
    if locale:
        accept += f"; locale={locale}"
    body = _get(f"{DOI_RESOLVER}{doi}", config, accept, f'DOI {style} lookup',
                timeout=config.render_timeout, cancel_event=cancel_event)

    # text/* without a charset would otherwise be decoded as latin-1
    text = html.unescape(body.decode('utf-8', errors='replace')).strip()
    if not text:
        raise ProviderUnavailable(f'DOI {style} lookup returned no text')
    return text


def _arxiv_doi_link(entry):
    """Journal DOI published alongside an arXiv entry, if any."""
    doi = entry.get('arxiv_doi')
    if doi:
        return extract_doi(doi)
    for link in entry.get('links', []):
        if link.get('title') == 'doi':
            return extract_doi(link.get('href', ''))
    return None


def fetch_arxiv_csl(arxiv_id, config, cancel_event=None):
    """Query the arXiv API by id and build a record from the first entry.

    The record's DOI is the journal DOI arXiv lists for the paper, else the
    arXiv DataCite DOI 10.48550/arXiv.<id>.
    """
    if not arxiv_id:
        raise ProviderUnavailable('No arXiv ID provided')

    logger.debug(f"arXiv lookup: {arxiv_id}")
    # feedparser doesn't support timeout directly, so we fetch with requests first
    body = _get(ARXIV_API, config, "application/atom+xml", 'arXiv lookup',
                params={'id_list': arxiv_id}, cancel_event=cancel_event)
    feed = feedparser.parse(body)
    if not feed.entries:
        raise ProviderUnavailable('arXiv ID not found')

    entry = feed.entries[0]
    title = first_text(entry.get('title'))
    if not title or title == 'Error' or 'api/errors' in entry.get('id', ''):
        raise ProviderUnavailable('arXiv ID not found')

    authors = [a.get('name', '') for a in entry.get('authors', [])]
    return base_item(
        id_prefix='arxiv',
        type='article-journal',
        title=title,
        author=[a for a in authors if a],
        issued=entry.get('published'),
        URL=f"https://arxiv.org/abs/{arxiv_id}",
        DOI=_arxiv_doi_link(entry) or arxiv_doi(arxiv_id),
        publisher='arXiv',
        abstract=entry.get('summary'),
    )
