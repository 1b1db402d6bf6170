import os

DEFAULT_USER_AGENT = "link2ref/0.1 (mailto:link2ref@example.com)"
# Sent on the single retry after a 403; some publishers reject non-browser clients.
ALTERNATE_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def _env_float(name, default):
    return float(os.environ.get(name, default))


def _env_int(name, default):
    return int(os.environ.get(name, default))


class Config:
    """Settings shared by the resolver and the formatter.

    Every field has a default; ``Config.from_env()`` overlays environment
    variables. Pass an instance explicitly instead of mutating module state.
    """

    def __init__(
        self,
        registry_timeout=10.0,
        fetch_timeout=15.0,
        render_timeout=10.0,
        ai_api_url=None,
        ai_api_key="",
        ai_model="gpt-4o-mini",
        ai_timeout=15.0,
        max_concurrent_renders=6,
        max_concurrent_resolves=4,
        max_batch_size=200,
        default_style="csl_json",
        locale="en-US",
        user_agent=DEFAULT_USER_AGENT,
        alternate_user_agent=ALTERNATE_USER_AGENT,
        max_document_bytes=20 * 1024 * 1024,
    ):
        self.registry_timeout = registry_timeout
        self.fetch_timeout = fetch_timeout
        self.render_timeout = render_timeout
        self.ai_api_url = ai_api_url
        self.ai_api_key = ai_api_key
        self.ai_model = ai_model
        self.ai_timeout = ai_timeout
        self.max_concurrent_renders = max_concurrent_renders
        self.max_concurrent_resolves = max_concurrent_resolves
        self.max_batch_size = max_batch_size
        self.default_style = default_style
        self.locale = locale
        self.user_agent = user_agent
        self.alternate_user_agent = alternate_user_agent
        self.max_document_bytes = max_document_bytes

    @classmethod
    def from_env(cls, **overrides):
        """Build a Config from LINK2REF_* / AI_* environment variables.

        Keyword arguments win over the environment.
        """
        values = {
            'registry_timeout': _env_float('LINK2REF_REGISTRY_TIMEOUT', '10'),
            'fetch_timeout': _env_float('LINK2REF_FETCH_TIMEOUT', '15'),
            'render_timeout': _env_float('LINK2REF_RENDER_TIMEOUT', '10'),
            'ai_api_url': os.environ.get('AI_API_URL') or None,
            'ai_api_key': os.environ.get('AI_API_KEY', ''),
            'ai_model': os.environ.get('AI_MODEL', 'gpt-4o-mini'),
            'ai_timeout': _env_float('AI_TIMEOUT', '15'),
            'max_concurrent_renders': _env_int('LINK2REF_MAX_RENDERS', '6'),
            'max_concurrent_resolves': _env_int('LINK2REF_MAX_RESOLVES', '4'),
            'max_batch_size': _env_int('LINK2REF_MAX_BATCH', '200'),
            'default_style': os.environ.get('LINK2REF_DEFAULT_STYLE', 'csl_json'),
            'locale': os.environ.get('LINK2REF_LOCALE', 'en-US'),
            'max_document_bytes': _env_int('LINK2REF_MAX_DOCUMENT_BYTES', str(20 * 1024 * 1024)),
        }
        values.update(overrides)
        return cls(**values)

    def headers(self, accept, alternate=False):
        """Request headers for an outgoing call."""
        return {
            "Accept": accept,
            "User-Agent": self.alternate_user_agent if alternate else self.user_agent,
        }
