"""Tests for the local APA and ABNT templates (no network)."""

import datetime

import pytest

from link2ref.config import Config
from link2ref.errors import FormattingFailed
from link2ref.formatters import (
    abnt_access_date,
    abnt_authors,
    apa_authors,
    apa_date,
    normalize_format,
    output_type_for,
    placeholder,
    record_doi,
    render_abnt,
    render_apa,
    render_local,
)


@pytest.fixture
def journal_item():
    return {
        'id': 'ref-1',
        'type': 'article-journal',
        'title': 'Array programming with NumPy',
        'author': [
            {'family': 'Harris', 'given': 'Charles R.'},
            {'family': 'Millman', 'given': 'K. Jarrod'},
        ],
        'issued': {'date-parts': [[2020, 9, 16]]},
        'container-title': 'Nature',
        'DOI': '10.1038/s41586-020-2649-2',
    }


@pytest.fixture
def news_item():
    return {
        'id': 'web-1',
        'type': 'article-newspaper',
        'title': 'Rains flood city',
        'author': [{'family': 'Silva', 'given': 'Ana'}],
        'issued': {'date-parts': [[2025, 6, 5]]},
        'accessed': {'date-parts': [[2025, 6, 5]]},
        'container-title': 'Example News',
        'URL': 'https://news.example.com/x',
    }


def people(count):
    return [{'family': f'Author{i}', 'given': 'Ann'} for i in range(1, count + 1)]


class TestNormalizeFormat:

    def test_known_styles(self):
        assert normalize_format('APA ') == 'apa'
        assert normalize_format('abnt') == 'abnt'
        assert normalize_format('csl_json') == 'csl_json'

    def test_unknown_falls_back_to_default(self):
        assert normalize_format('bibtex', Config()) == 'csl_json'
        assert normalize_format(None, Config(default_style='abnt')) == 'abnt'

    def test_bad_default_falls_back_to_csl_json(self):
        assert normalize_format('mla', Config(default_style='mla')) == 'csl_json'

    def test_output_type(self):
        assert output_type_for('csl_json') == 'json'
        assert output_type_for('apa') == 'text'


class TestRecordDoi:

    def test_doi_field(self, journal_item):
        assert record_doi(journal_item) == '10.1038/s41586-020-2649-2'

    def test_doi_in_url(self):
        assert record_doi({'URL': 'https://doi.org/10.5555/abc'}) == '10.5555/abc'

    def test_none(self, news_item):
        assert record_doi(news_item) is None
        assert record_doi(None) is None


class TestApa:

    def test_journal_article(self, journal_item):
        assert render_apa(journal_item) == (
            "Harris, C. R., & Millman, K. J. (2020). Array programming with NumPy. Nature. "
            "https://doi.org/10.1038/s41586-020-2649-2"
        )

    def test_news_article_has_month_and_day(self, news_item):
        assert render_apa(news_item) == (
            "Silva, A. (2025, June 5). Rains flood city. Example News. https://news.example.com/x"
        )

    def test_no_author_moves_title_first(self, news_item):
        del news_item['author']
        assert render_apa(news_item).startswith("Rains flood city. (2025, June 5).")

    def test_no_date(self, journal_item):
        del journal_item['issued']
        assert "(n.d.)." in render_apa(journal_item)

    def test_journal_date_is_year_only(self, journal_item):
        assert apa_date(journal_item) == "2020"

    def test_institutional_author(self):
        assert apa_authors([{'literal': 'World Bank'}]) == "World Bank"

    def test_hyphenated_initials(self):
        assert apa_authors([{'family': 'Sartre', 'given': 'Jean-Paul'}]) == "Sartre, J.-P."

    def test_more_than_twenty_authors(self):
        text = apa_authors(people(25))
        assert text.startswith("Author1, A., Author2, A.")
        assert "Author19, A., . . . Author25, A." in text
        assert "Author20," not in text


class TestAbnt:

    def test_news_article(self, news_item):
        assert render_abnt(news_item) == (
            "SILVA, Ana. Rains flood city. Example News, 2025. "
            "Disponível em: https://news.example.com/x. Acesso em: 5 jun. 2025."
        )

    def test_doi_link(self, journal_item):
        text = render_abnt(journal_item, today=datetime.date(2026, 1, 2))
        assert text == (
            "HARRIS, Charles R.; MILLMAN, K. Jarrod. Array programming with NumPy. Nature, 2020. "
            "Disponível em: https://doi.org/10.1038/s41586-020-2649-2. Acesso em: 2 jan. 2026."
        )

    def test_no_date(self, news_item):
        del news_item['issued']
        assert "Example News, [s. d.]." in render_abnt(news_item)

    def test_many_authors_et_al(self):
        assert abnt_authors(people(4)) == "AUTHOR1, Ann et al"

    def test_access_date_defaults_to_today(self):
        assert abnt_access_date({}, today=datetime.date(2025, 12, 25)) == "Acesso em: 25 dez. 2025"

    def test_no_link_no_access_date(self):
        text = render_abnt({'title': 'Offline Report', 'publisher': 'Water Board'})
        assert text == "Offline Report. Water Board, [s. d.]."


class TestRenderLocal:

    def test_unknown_style(self, journal_item):
        with pytest.raises(FormattingFailed):
            render_local(journal_item, 'mla')

    def test_malformed_record(self):
        with pytest.raises(FormattingFailed, match="APA rendering failed"):
            render_local({'title': 'x', 'author': ['Jane Smith']}, 'apa')

    def test_placeholder(self, journal_item):
        assert placeholder(journal_item, 'apa') == "[APA formatting failed] Array programming with NumPy"
        assert placeholder(None, 'abnt') == "[ABNT formatting failed] Untitled"
