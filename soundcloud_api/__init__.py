"""Async SoundCloud API client.

Request execution, retry/backoff, 401 token refresh and next_href pagination
live in http.py, retry.py, refresh.py and paginate.py; SoundCloudClient wraps
them with per-endpoint methods.
"""

from .client import SoundCloudClient
from .errors import SoundCloudError
from .http import FormBody, MultipartBody, RequestOptions, sc_fetch, sc_fetch_url
from .paginate import fetch_all, paginate, paginate_items
from .refresh import RefreshContext
from .retry import RetryEvent, RetryPolicy, retry_async
from .token_manager import TokenInfo, TokenStore
from .utils import format_date, get_tags, get_widget_url

__all__ = [
    "SoundCloudClient",
    "SoundCloudError",
    "FormBody",
    "MultipartBody",
    "RequestOptions",
    "sc_fetch",
    "sc_fetch_url",
    "fetch_all",
    "paginate",
    "paginate_items",
    "RefreshContext",
    "RetryEvent",
    "RetryPolicy",
    "retry_async",
    "TokenInfo",
    "TokenStore",
    "format_date",
    "get_tags",
    "get_widget_url",
]
