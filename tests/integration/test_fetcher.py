"""Integration tests for document fetching with mocked HTTP responses."""

import threading

import pytest
import requests
import responses

from link2ref.errors import Cancelled, ProviderUnavailable
from link2ref.fetcher import detect_document_kind, fetch_document

PAGE_URL = "https://example.org/report"


class TestDetectDocumentKind:

    @pytest.mark.parametrize("url,content_type,head,kind", [
        (PAGE_URL, "application/pdf", b"", 'pdf'),
        (PAGE_URL, "Application/PDF; charset=binary", b"", 'pdf'),
        ("https://example.org/files/report.PDF?dl=1", "application/octet-stream", b"", 'pdf'),
        (PAGE_URL, "application/octet-stream", b"%PDF-", 'pdf'),
        (PAGE_URL, "text/html; charset=utf-8", b"<html", 'html'),
        (PAGE_URL, "", b"", 'html'),
    ])
    def test_kinds(self, url, content_type, head, kind):
        assert detect_document_kind(url, content_type, head) == kind


class TestFetchDocument:
    """Tests for fetch_document()."""

    @responses.activate
    def test_html_page(self, config):
        responses.add(responses.GET, PAGE_URL, body="<html><title>x</title></html>",
                      content_type="text/html", status=200)

        document = fetch_document(PAGE_URL, config)

        assert document['kind'] == 'html'
        assert document['status'] == 200
        assert document['content'] == b"<html><title>x</title></html>"
        assert document['url'] == PAGE_URL
        assert responses.calls[0].request.headers['User-Agent'] == config.user_agent

    @responses.activate
    def test_pdf_by_magic_bytes(self, config):
        responses.add(responses.GET, PAGE_URL, body=b"%PDF-1.7 rest of file",
                      content_type="application/octet-stream", status=200)

        assert fetch_document(PAGE_URL, config)['kind'] == 'pdf'

    @responses.activate
    def test_403_retried_with_alternate_user_agent(self, config):
        responses.add(responses.GET, PAGE_URL, status=403)
        responses.add(responses.GET, PAGE_URL, body="<html></html>", content_type="text/html", status=200)

        document = fetch_document(PAGE_URL, config)

        assert document['status'] == 200
        assert len(responses.calls) == 2
        assert responses.calls[0].request.headers['User-Agent'] == config.user_agent
        assert responses.calls[1].request.headers['User-Agent'] == config.alternate_user_agent

    @responses.activate
    def test_403_twice(self, config):
        responses.add(responses.GET, PAGE_URL, status=403)
        responses.add(responses.GET, PAGE_URL, status=403)

        with pytest.raises(ProviderUnavailable, match="HTTP 403") as excinfo:
            fetch_document(PAGE_URL, config)
        assert excinfo.value.status == 403
        assert len(responses.calls) == 2

    @responses.activate
    def test_not_found_not_retried(self, config):
        responses.add(responses.GET, PAGE_URL, status=404)

        with pytest.raises(ProviderUnavailable, match="HTTP 404") as excinfo:
            fetch_document(PAGE_URL, config)
        assert excinfo.value.status == 404
        assert len(responses.calls) == 1

    @responses.activate
    def test_size_cap(self, config):
        config.max_document_bytes = 1000
        responses.add(responses.GET, PAGE_URL, body=b"x" * 5000, content_type="text/html", status=200)

        document = fetch_document(PAGE_URL, config)

        assert len(document['content']) == 1000

    @responses.activate
    def test_cancelled_during_download(self, config):
        responses.add(responses.GET, PAGE_URL, body=b"x" * 100, content_type="text/html", status=200)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(Cancelled):
            fetch_document(PAGE_URL, config, cancel_event=cancel)

    @responses.activate
    def test_timeout(self, config):
        responses.add(responses.GET, PAGE_URL, body=requests.exceptions.Timeout())

        with pytest.raises(ProviderUnavailable, match="Fetch timed out") as excinfo:
            fetch_document(PAGE_URL, config)
        assert excinfo.value.status is None

    @responses.activate
    def test_connection_error(self, config):
        responses.add(responses.GET, PAGE_URL, body=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(ProviderUnavailable, match="Fetch failed"):
            fetch_document(PAGE_URL, config)
