"""Turn URLs, DOIs and arXiv links into bibliographic records and citations."""

from link2ref.config import Config
from link2ref.formatters import OUTPUT_FORMATS, format_output, normalize_format
from link2ref.resolver import parse_links, resolve_batch, resolve_link

__version__ = "0.1.0"

__all__ = [
    'Config',
    'OUTPUT_FORMATS',
    'format_output',
    'normalize_format',
    'parse_links',
    'resolve_batch',
    'resolve_link',
]
