"""Optional AI metadata suggester for PDFs the regex heuristics struggle with.

The resolver only sees the ``MetadataSuggester`` interface. ``NullSuggester``
never answers; ``ChatCompletionSuggester`` posts the early-page text to an
OpenAI-compatible chat completions endpoint. Every failure (timeout, non-2xx,
unparseable answer, missing title) is reported as "no answer" (None).
"""

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

import requests

logger = logging.getLogger(__name__)

MAX_TEXT_LENGTH = 4000
MIN_TEXT_LENGTH = 50

PROMPT = """Extract metadata from this academic/professional document text. Return ONLY valid JSON, no markdown, no explanation.

Required format:
{"title":"string","authors":"Last, First; Last, First","year":number or null,"publisher":"string or null","abstract":"string or null","documentType":"article|report|book|thesis"}

Rules:
- Extract only what is explicitly stated in the text
- authors in "Last, First" format separated by semicolons
- year is the publication/copyright year as a number
- If a field cannot be determined, use null
- Return ONLY the JSON object

Text:
"""

# documentType answer -> CSL type
DOCUMENT_TYPES = {
    'article': 'article-journal',
    'report': 'report',
    'book': 'book',
    'thesis': 'thesis',
}


def _text_or_none(value):
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_json_response(text):
    """Pull the metadata object out of a model answer.

    Tolerates markdown code fences and chatter around the JSON object.
    Returns None unless the object has a non-empty string title.
    """
    if not text:
        return None
    cleaned = re.sub(r'```(?:json)?\s*\n?', '', text)
    start = cleaned.find('{')
    end = cleaned.rfind('}')
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None

    title = _text_or_none(parsed.get('title'))
    if not title:
        return None

    year = parsed.get('year')
    if isinstance(year, bool) or not isinstance(year, int):
        year = None

    document_type = _text_or_none(parsed.get('documentType'))
    return {
        'title': title,
        'authors': _text_or_none(parsed.get('authors')),
        'year': year,
        'publisher': _text_or_none(parsed.get('publisher')),
        'abstract': _text_or_none(parsed.get('abstract')),
        'type': DOCUMENT_TYPES.get(document_type.lower()) if document_type else None,
    }


class MetadataSuggester:
    """Suggest metadata for a document from its early-page text."""

    def suggest(self, text):
        """Return a dict with title/authors/year/publisher/abstract/type, or None."""
        raise NotImplementedError


class NullSuggester(MetadataSuggester):
    def suggest(self, text):
        return None


class ChatCompletionSuggester(MetadataSuggester):
    """POSTs the text to an OpenAI-compatible ``/chat/completions`` URL."""

    def __init__(self, api_url, api_key="", model="gpt-4o-mini", timeout=15.0):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def _post(self, headers, body):
        """Send the completion request and return the model's message text."""
        response = requests.post(self.api_url, headers=headers, json=body, timeout=self.timeout)
        if response.status_code != 200:
            logger.warning(f"AI metadata request failed ({response.status_code})")
            return None
        return response.json()['choices'][0]['message']['content']

    def suggest(self, text):
        if not text or len(text.strip()) < MIN_TEXT_LENGTH:
            return None

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        body = {
            'model': self.model,
            'messages': [{'role': 'user', 'content': PROMPT + text[:MAX_TEXT_LENGTH]}],
            'temperature': 0,
        }

        # requests' timeout bounds each socket operation; the future bounds the whole call
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self._post, headers, body)
        try:
            content = future.result(timeout=self.timeout)
        except (FutureTimeout, requests.exceptions.Timeout):
            logger.warning("AI metadata request timed out")
            return None
        except (requests.exceptions.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"AI metadata request failed: {e}")
            return None
        finally:
            executor.shutdown(wait=False)
        if content is None:
            return None

        metadata = parse_json_response(content)
        if metadata:
            logger.info("AI metadata extraction succeeded")
        else:
            logger.warning("Failed to parse AI metadata response")
        return metadata


def suggester_from_config(config):
    """A ChatCompletionSuggester when an AI endpoint is configured, else a NullSuggester."""
    if not config.ai_api_url:
        return NullSuggester()
    return ChatCompletionSuggester(
        config.ai_api_url,
        api_key=config.ai_api_key,
        model=config.ai_model,
        timeout=config.ai_timeout,
    )
