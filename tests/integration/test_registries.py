"""Integration tests for the DOI registry and arXiv clients with mocked HTTP responses."""

import threading

import pytest
import requests
import responses

from link2ref.errors import Cancelled, ProviderUnavailable
from link2ref.registries import (
    ARXIV_API,
    CSL_JSON,
    fetch_arxiv_csl,
    fetch_doi_bibliography,
    fetch_doi_csl,
)

from tests.fixtures.mock_responses import (
    ARXIV_EMPTY,
    ARXIV_ERROR,
    ARXIV_ID,
    ARXIV_SUCCESS,
    ARXIV_WITH_JOURNAL_DOI,
    DOI_APA_NUMPY,
    DOI_CSL_LIST_FIELDS,
    DOI_CSL_NUMPY,
    NUMPY_DOI,
)

NUMPY_URL = f"https://doi.org/{NUMPY_DOI}"


class TestFetchDoiCsl:
    """Tests for DOI content negotiation (CSL-JSON)."""

    @responses.activate
    def test_success(self, config):
        responses.add(responses.GET, NUMPY_URL, json=DOI_CSL_NUMPY, status=200)

        record = fetch_doi_csl(NUMPY_DOI, config)

        assert record['title'] == "Array programming with NumPy"
        assert record['DOI'] == NUMPY_DOI
        assert record['container-title'] == "Nature"
        assert record['author'][0] == {'given': 'Charles R.', 'family': 'Harris'}
        assert len(record['author']) == 3
        assert record['issued'] == {'date-parts': [[2020, 9, 16]]}
        # Extra registry keys are kept
        assert record['volume'] == "585"
        assert responses.calls[0].request.headers['Accept'] == CSL_JSON
        assert responses.calls[0].request.headers['User-Agent'] == config.user_agent

    @responses.activate
    def test_list_fields_flattened(self, config):
        doi = DOI_CSL_LIST_FIELDS['DOI']
        responses.add(responses.GET, f"https://doi.org/{doi}", json=DOI_CSL_LIST_FIELDS, status=200)

        record = fetch_doi_csl(doi, config)

        assert record['title'] == "Climate Finance and Development: Evidence from Emerging Markets"
        assert 'container-title' not in record
        assert record['author'] == [{'given': 'Jane', 'family': 'Smith'}]
        assert record['URL'] == f"https://doi.org/{doi}"
        assert record['id'].startswith('doi-')

    @responses.activate
    def test_not_found(self, config):
        responses.add(responses.GET, NUMPY_URL, status=404)

        with pytest.raises(ProviderUnavailable, match=r"DOI lookup failed \(404\)") as excinfo:
            fetch_doi_csl(NUMPY_DOI, config)
        assert excinfo.value.status == 404

    @responses.activate
    def test_rate_limited(self, config):
        responses.add(responses.GET, NUMPY_URL, status=429)

        with pytest.raises(ProviderUnavailable, match=r"Rate limited \(429\)"):
            fetch_doi_csl(NUMPY_DOI, config)

    @responses.activate
    def test_timeout(self, config):
        responses.add(responses.GET, NUMPY_URL, body=requests.exceptions.Timeout())

        with pytest.raises(ProviderUnavailable, match="DOI lookup timed out"):
            fetch_doi_csl(NUMPY_DOI, config)

    @responses.activate
    def test_connection_error(self, config):
        responses.add(responses.GET, NUMPY_URL, body=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(ProviderUnavailable, match="DOI lookup failed"):
            fetch_doi_csl(NUMPY_DOI, config)

    @responses.activate
    def test_unparseable_body(self, config):
        responses.add(responses.GET, NUMPY_URL, body="<html>not json</html>", status=200)

        with pytest.raises(ProviderUnavailable, match="Failed to parse DOI metadata"):
            fetch_doi_csl(NUMPY_DOI, config)

    def test_missing_doi(self, config):
        with pytest.raises(ProviderUnavailable, match="No DOI provided"):
            fetch_doi_csl("", config)

    @pytest.mark.parametrize("issued,expected", [
        ({'date-parts': [[None]]}, None),
        ({'date-parts': [[2020, None]]}, {'date-parts': [[2020]]}),
    ])
    @responses.activate
    def test_unknown_date_parts(self, config, issued, expected):
        data = dict(DOI_CSL_NUMPY, issued=issued, accessed={'date-parts': [[None]]})
        responses.add(responses.GET, NUMPY_URL, json=data, status=200)

        record = fetch_doi_csl(NUMPY_DOI, config)

        assert record.get('issued') == expected
        assert 'accessed' not in record

    @responses.activate
    def test_registry_doi_case_follows_lookup(self, config):
        doi = "10.48550/arXiv.2101.00001"
        data = {'type': 'article', 'title': "Sparse Attention for Long Documents",
                'DOI': "10.48550/ARXIV.2101.00001", 'publisher': "arXiv"}
        responses.add(responses.GET, f"https://doi.org/{doi}", json=data, status=200)

        record = fetch_doi_csl(doi, config)

        assert record['DOI'] == doi
        assert record['URL'] == f"https://doi.org/{doi}"

    @responses.activate
    def test_cancelled_before_request(self, config):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(Cancelled):
            fetch_doi_csl(NUMPY_DOI, config, cancel_event=cancel)
        assert len(responses.calls) == 0


class TestFetchDoiBibliography:
    """Tests for registry-rendered citations."""

    @responses.activate
    def test_entities_decoded(self, config):
        responses.add(
            responses.GET, NUMPY_URL,
            body=DOI_APA_NUMPY.encode('utf-8'),
            content_type="text/x-bibliography",
            status=200,
        )

        text = fetch_doi_bibliography(NUMPY_DOI, 'apa', config, locale='en-US')

        assert "357–362" in text
        assert "del Río" in text
        assert "&#8211;" not in text
        assert not text.endswith("\n")
        accept = responses.calls[0].request.headers['Accept']
        assert accept == "text/x-bibliography; style=apa; locale=en-US"

    @responses.activate
    def test_failure_status(self, config):
        responses.add(responses.GET, NUMPY_URL, status=503)

        with pytest.raises(ProviderUnavailable, match=r"DOI apa lookup failed \(503\)"):
            fetch_doi_bibliography(NUMPY_DOI, 'apa', config)

    @responses.activate
    def test_empty_body(self, config):
        responses.add(responses.GET, NUMPY_URL, body="  \n", status=200)

        with pytest.raises(ProviderUnavailable, match="returned no text"):
            fetch_doi_bibliography(NUMPY_DOI, 'apa', config)

    @responses.activate
    def test_cancelled_while_reading(self, config):
        cancel = threading.Event()

        def answer(request):
            cancel.set()
            return 200, {}, DOI_APA_NUMPY

        responses.add_callback(responses.GET, NUMPY_URL, callback=answer)

        with pytest.raises(Cancelled):
            fetch_doi_bibliography(NUMPY_DOI, 'apa', config, cancel_event=cancel)


class TestFetchArxivCsl:
    """Tests for arXiv API lookups."""

    @responses.activate
    def test_success(self, config):
        responses.add(responses.GET, ARXIV_API, body=ARXIV_SUCCESS, status=200)

        record = fetch_arxiv_csl(ARXIV_ID, config)

        assert record['title'] == "Sparse Attention for Long Documents"
        assert record['type'] == 'article-journal'
        assert record['author'] == [
            {'given': 'Jane', 'family': 'Smith'},
            {'given': 'Ali', 'family': 'Khan'},
        ]
        assert record['issued'] == {'date-parts': [[2021, 1, 1]]}
        assert record['DOI'] == "10.48550/arXiv.2101.00001"
        assert record['URL'] == "https://arxiv.org/abs/2101.00001"
        assert record['publisher'] == "arXiv"
        assert record['abstract'].startswith("We study sparse attention")
        assert record['id'].startswith('arxiv-')
        assert "id_list=2101.00001" in responses.calls[0].request.url

    @responses.activate
    def test_journal_doi_preferred(self, config):
        responses.add(responses.GET, ARXIV_API, body=ARXIV_WITH_JOURNAL_DOI, status=200)

        record = fetch_arxiv_csl("0704.0001", config)

        assert record['DOI'] == "10.1103/PhysRevD.76.013009"
        assert record['author'][1] == {'given': 'E. L.', 'family': 'Berger'}

    @pytest.mark.parametrize("body", [ARXIV_ERROR, ARXIV_EMPTY])
    @responses.activate
    def test_not_found(self, config, body):
        responses.add(responses.GET, ARXIV_API, body=body, status=200)

        with pytest.raises(ProviderUnavailable, match="arXiv ID not found"):
            fetch_arxiv_csl("9999.99999", config)

    @responses.activate
    def test_server_error(self, config):
        responses.add(responses.GET, ARXIV_API, status=503)

        with pytest.raises(ProviderUnavailable, match=r"arXiv lookup failed \(503\)"):
            fetch_arxiv_csl(ARXIV_ID, config)
