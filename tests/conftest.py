"""Shared pytest fixtures for all tests."""

import pytest

from link2ref.ai_extractor import NullSuggester
from link2ref.config import Config


@pytest.fixture
def config():
    """Config with short timeouts and no AI endpoint, independent of the environment."""
    return Config(
        registry_timeout=1,
        fetch_timeout=1,
        render_timeout=1,
        ai_api_url=None,
        max_concurrent_renders=3,
        max_concurrent_resolves=2,
        max_batch_size=10,
        default_style='csl_json',
    )


@pytest.fixture
def null_suggester():
    return NullSuggester()


@pytest.fixture
def working_paper_text():
    """First page of a working paper with a footnoted byline."""
    return """WORKING PAPER No. 23-45
March 2023
Climate Finance and Development:
Evidence from Emerging Markets
Jane Smith1, Ali Khan2,3 and Maria Lopez1
1 University of Oxford, Department of Economics
2 London School of Economics
Abstract
This paper studies how climate finance flows
affect investment in emerging markets over two decades.
1 Introduction
Climate finance has grown quickly in the last decade.
Published by the Global Policy Institute.
"""


@pytest.fixture
def report_text():
    """Title page of an institutional report with a 'by' byline."""
    return """Annual Review of Urban Water Systems
by John Doe, Mary Major and
Peter Pan
Global Water Foundation
© 2021 Global Water Foundation. All rights reserved.
"""


@pytest.fixture
def ligature_text():
    """Text containing common PDF ligatures."""
    return "This is a ﬁne ﬁle with ﬂuid ﬀects and eﬃcient eﬄuent ﬅrange ﬆuff."


@pytest.fixture
def make_pdf():
    """Build a PDF in memory whose pages carry the given text (one string per page)."""
    import fitz

    def build(*pages):
        doc = fitz.open()
        for text in pages:
            page = doc.new_page()
            if text:
                page.insert_text((72, 72), text, fontsize=10)
        data = doc.tobytes()
        doc.close()
        return data

    return build
