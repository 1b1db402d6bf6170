"""Single-document HTTP fetch with HTML/PDF classification."""

import logging
import urllib.parse

import requests

from link2ref.errors import Cancelled, ProviderUnavailable

logger = logging.getLogger(__name__)

DOCUMENT_ACCEPT = "text/html,application/pdf,application/xhtml+xml,*/*"
CHUNK_SIZE = 64 * 1024


def detect_document_kind(url, content_type, head=b""):
    """Classify a payload as 'pdf' or 'html'.

    PDF when the content type says so, the URL path ends in .pdf, or the body
    starts with the PDF magic bytes.
    """
    if content_type and 'application/pdf' in content_type.lower():
        return 'pdf'
    path = urllib.parse.urlsplit(url).path.lower() if url else ""
    if path.endswith('.pdf'):
        return 'pdf'
    if head.startswith(b'%PDF-'):
        return 'pdf'
    return 'html'


def _open(url, config, alternate):
    try:
        return requests.get(
            url,
            headers=config.headers(DOCUMENT_ACCEPT, alternate=alternate),
            timeout=config.fetch_timeout,
            allow_redirects=True,
            stream=True,
        )
    except requests.exceptions.Timeout:
        raise ProviderUnavailable('Fetch timed out')
    except requests.exceptions.RequestException as e:
        raise ProviderUnavailable(f'Fetch failed: {e}')


def read_body(response, cancel_event=None, max_bytes=None, what='Fetch'):
    """Read a streamed body in chunks, honouring cancellation and an optional size cap.

    The response is always closed.
    """
    chunks = []
    size = 0
    try:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if cancel_event is not None and cancel_event.is_set():
                raise Cancelled('Cancelled')
            if not chunk:
                continue
            if max_bytes is not None:
                chunk = chunk[:max_bytes - size]
            chunks.append(chunk)
            size += len(chunk)
            if max_bytes is not None and size >= max_bytes:
                logger.warning(f"Document truncated at {size} bytes: {response.url}")
                break
    except requests.exceptions.Timeout:
        raise ProviderUnavailable(f'{what} timed out')
    except requests.exceptions.RequestException as e:
        raise ProviderUnavailable(f'{what} failed: {e}')
    finally:
        response.close()
    return b"".join(chunks)


def fetch_document(url, config, cancel_event=None):
    """Fetch ``url`` and return a dict describing the payload.

    Keys: ``url`` (after redirects), ``status``, ``content_type``, ``kind``
    ('pdf' | 'html') and ``content`` (bytes).

    An HTTP 403 is retried once with the alternate client identity. Any other
    non-2xx status raises ProviderUnavailable carrying the status code.
    """
    response = _open(url, config, alternate=False)
    if response.status_code == 403:
        logger.info(f"HTTP 403 from {url}, retrying with alternate user agent")
        response.close()
        response = _open(url, config, alternate=True)

    if not 200 <= response.status_code < 300:
        status = response.status_code
        response.close()
        raise ProviderUnavailable(f'HTTP {status}', status=status)

    content_type = response.headers.get('Content-Type', '')
    final_url = response.url or url
    content = read_body(response, cancel_event, max_bytes=config.max_document_bytes)

    return {
        'url': final_url,
        'status': response.status_code,
        'content_type': content_type,
        'kind': detect_document_kind(final_url, content_type, content[:5]),
        'content': content,
    }
