"""Error types raised inside the resolution and formatting pipeline.

None of these escape ``resolve_link``/``format_output``; they are caught at
the nearest strategy boundary and turned into the next fallback attempt or a
failure outcome.
"""


class Link2RefError(Exception):
    """Base class for all pipeline errors."""


class InvalidInput(Link2RefError):
    """Empty or unparseable user input."""


class ProviderUnavailable(Link2RefError):
    """A registry or document host answered non-2xx, timed out or was unreachable."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class ExtractionEmpty(Link2RefError):
    """No usable text could be obtained from a fetched document."""


class FormattingFailed(Link2RefError):
    """Rendering a single record into a citation style failed."""


class Cancelled(Link2RefError):
    """The batch this work belongs to was cancelled."""
