"""Resolve raw user input into canonical records.

Resolution runs an ordered chain of named strategies through
``first_success``; each strategy either returns ``(strategy_used, record)``
or raises a ``Link2RefError`` and the next one is tried:

1. ``doi``       DOI found in the locator text
2. ``arxiv-doi`` arXiv DataCite DOI (10.48550/arXiv.<id>) for arXiv URLs
3. ``arxiv``     arXiv API for arXiv URLs
4. ``document``  fetch the page/PDF and extract metadata from it

A ``https://doi.org/...`` locator gets a chain of the DOI lookup alone, so a
registry failure there is final.
"""

import logging

from link2ref.ai_extractor import suggester_from_config
from link2ref.config import Config
from link2ref.errors import Cancelled, InvalidInput, Link2RefError, ProviderUnavailable
from link2ref.extractors import parse_html_to_csl, parse_pdf_to_csl
from link2ref.fetcher import fetch_document
from link2ref.formatters import format_output, normalize_format, output_type_for
from link2ref.identifiers import (
    arxiv_doi,
    doi_from_resolver_url,
    extract_arxiv_id,
    extract_doi_from_url,
    is_doi_resolver_url,
    normalize_input,
)
from link2ref.pool import run_in_order
from link2ref.registries import fetch_arxiv_csl, fetch_doi_csl

logger = logging.getLogger(__name__)


def first_success(strategies, locator, cancel_event=None):
    """Run ``(name, strategy)`` pairs in order; return the first ``(strategy_used, record)``.

    Raises the last strategy's error when every strategy fails.
    """
    last_error = None
    for name, strategy in strategies:
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled('Cancelled')
        try:
            result = strategy(locator)
        except Cancelled:
            raise
        except Link2RefError as e:
            logger.debug(f"    {name}: {e}")
            last_error = e
            continue
        logger.debug(f"    {name}: FOUND")
        return result
    raise last_error or ProviderUnavailable('No strategy could resolve the input')


def doi_strategy(doi, config, cancel_event=None):
    def lookup(locator):
        return 'doi', fetch_doi_csl(doi, config, cancel_event=cancel_event)
    return lookup


def arxiv_strategy(arxiv_id, config, cancel_event=None):
    def lookup(locator):
        return 'arxiv', fetch_arxiv_csl(arxiv_id, config, cancel_event=cancel_event)
    return lookup


def document_strategy(config, suggester, cancel_event, fallback_doi=None):
    """Fetch the locator and hand the payload to the HTML or PDF extractor.

    A non-2xx answer gets one last registry lookup when the URL carried a DOI.
    """
    def fetch_and_extract(locator):
        try:
            document = fetch_document(locator, config, cancel_event=cancel_event)
        except ProviderUnavailable as e:
            if e.status is None or not fallback_doi:
                raise
            logger.info(f"  {e}, last-chance DOI lookup for {fallback_doi}")
            try:
                return 'doi', fetch_doi_csl(fallback_doi, config, cancel_event=cancel_event)
            except ProviderUnavailable:
                raise e

        if document['kind'] == 'pdf':
            return 'pdf', parse_pdf_to_csl(locator, document['content'], config, suggester)
        return 'html', parse_html_to_csl(locator, document['content'], config)
    return fetch_and_extract


def build_strategies(locator, config, suggester=None, cancel_event=None):
    """The ordered strategy chain for a normalized locator."""
    if is_doi_resolver_url(locator):
        doi = extract_doi_from_url(locator) or doi_from_resolver_url(locator)
        return [('doi', doi_strategy(doi, config, cancel_event))]

    strategies = []
    doi = extract_doi_from_url(locator)
    if doi:
        strategies.append(('doi', doi_strategy(doi, config, cancel_event)))

    arxiv_id = extract_arxiv_id(locator)
    if arxiv_id:
        strategies.append(('arxiv-doi', doi_strategy(arxiv_doi(arxiv_id), config, cancel_event)))
        strategies.append(('arxiv', arxiv_strategy(arxiv_id, config, cancel_event)))

    strategies.append(('document', document_strategy(config, suggester, cancel_event, fallback_doi=doi)))
    return strategies


def _failure(raw, normalized, message):
    return {'ok': False, 'input': raw, 'normalized': normalized, 'error': message}


def resolve_link(raw, config=None, suggester=None, cancel_event=None):
    """Resolve one input string into a Success or Failure outcome dict.

    Never raises: every error is reported as ``{'ok': False, ..., 'error': msg}``.
    """
    config = config or Config.from_env()
    if suggester is None:
        suggester = suggester_from_config(config)

    try:
        normalized = normalize_input(raw)
    except InvalidInput as e:
        return _failure(raw, None, str(e))

    logger.info(f"Resolving {normalized}")
    try:
        strategies = build_strategies(normalized, config, suggester, cancel_event)
        strategy, record = first_success(strategies, normalized, cancel_event)
    except Link2RefError as e:
        logger.info(f"  -> FAILED: {e}")
        return _failure(raw, normalized, str(e))
    except Exception as e:
        logger.exception(f"Unexpected error resolving {normalized}")
        return _failure(raw, normalized, str(e) or e.__class__.__name__)

    # Every record stays traceable to where it came from
    if not record.get('URL') and not record.get('DOI'):
        record['URL'] = normalized

    logger.info(f"  -> {strategy.upper()}: {record.get('title', '')[:60]}")
    return {'ok': True, 'input': raw, 'normalized': normalized, 'csl': record, 'strategy': strategy}


def prepare_inputs(inputs, config):
    """Trim inputs, drop blank lines and cap the batch size."""
    jobs = [str(v or "").strip() for v in inputs or []]
    jobs = [j for j in jobs if j]
    if len(jobs) > config.max_batch_size:
        logger.warning(f"Batch of {len(jobs)} inputs capped at {config.max_batch_size}")
    return jobs[:config.max_batch_size]


def resolve_batch(inputs, config=None, suggester=None, on_progress=None, cancel_event=None):
    """Resolve many inputs with bounded concurrency, preserving input order.

    Args:
        inputs: Raw input strings; blank ones are dropped
        on_progress: Optional callback function(event_type, data)
            event_type can be: 'checking', 'result'
        cancel_event: Optional threading.Event; once set no new inputs are
            started and their slots in the returned list are None

    Returns:
        List of outcome dicts (or None for inputs never started)
    """
    config = config or Config.from_env()
    if suggester is None:
        suggester = suggester_from_config(config)
    jobs = prepare_inputs(inputs, config)

    def resolve_one(i, raw):
        if on_progress:
            on_progress('checking', {
                'index': i,
                'total': len(jobs),
                'input': raw,
            })

        outcome = resolve_link(raw, config=config, suggester=suggester, cancel_event=cancel_event)

        if on_progress:
            on_progress('result', {
                'index': i,
                'total': len(jobs),
                'outcome': outcome,
            })
        return outcome

    return run_in_order(jobs, resolve_one, config.max_concurrent_resolves, cancel_event)


def parse_links(inputs, style=None, config=None, suggester=None, on_progress=None, cancel_event=None):
    """Resolve a batch of inputs and render the successful records in ``style``.

    Returns a report dict: format, output_type, total, success, failed,
    output (rendered entries, aligned with csl), csl, results and cancelled.
    """
    config = config or Config.from_env()
    style = normalize_format(style, config)
    jobs = prepare_inputs(inputs, config)

    outcomes = resolve_batch(jobs, config=config, suggester=suggester,
                             on_progress=on_progress, cancel_event=cancel_event)
    results = [r for r in outcomes if r is not None]
    csl = [r['csl'] for r in results if r['ok']]
    output = format_output(csl, style, config=config, cancel_event=cancel_event)

    return {
        'format': style,
        'output_type': output_type_for(style),
        'total': len(jobs),
        'success': len(csl),
        'failed': len(results) - len(csl),
        'output': output,
        'csl': csl,
        'results': results,
        'cancelled': bool(cancel_event is not None and cancel_event.is_set()),
    }
