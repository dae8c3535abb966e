import json
import math
from typing import Any, Dict, List, Mapping, Optional

import httpx

RETRY_AFTER_HEADER = "Retry-After"


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Return the Retry-After hint in seconds, or None if absent/unusable."""

    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    if math.isnan(seconds) or math.isinf(seconds) or seconds < 0:
        return None
    return seconds



class SoundCloudError(Exception):
    """Raised when a SoundCloud API request fails with an HTTP error status.

    The API returns varying combinations of these body fields depending on the
    endpoint and error type (all optional):

    - message, error_description, error_code, error
    - link (docs URL)
    - errors: [{"error_message": ...}, ...]

    Callers should branch on the ``is_*`` predicates rather than on raw status
    numbers or message text.
    """

    def __init__(
        self,
        status: int,
        status_text: str,
        body: Optional[Dict[str, Any]] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.status = int(status)
        self.status_text = status_text or ""
        self.body = body
        self.headers = httpx.Headers(headers or {})
        self.retry_after: Optional[float] = parse_retry_after(self.headers.get(RETRY_AFTER_HEADER))

        body = body or {}
        self.error_code: Optional[str] = body.get("error_code") or None
        self.docs_link: Optional[str] = body.get("link") or None

        errors: List[str] = []
        for e in body.get("errors") or []:
            if isinstance(e, dict) and e.get("error_message"):
                errors.append(str(e["error_message"]))
        self.errors = errors

        message = (
            body.get("message")
            or body.get("error_description")
            or body.get("error_code")
            or (errors[0] if errors else None)
            or body.get("error")
            or f"{self.status} {self.status_text}".strip()
        )
        super().__init__(str(message))

    @classmethod
    def from_response(cls, response: httpx.Response) -> "SoundCloudError":
        """Build an error from a failed response, parsing the body if it is a JSON object."""

        body: Optional[Dict[str, Any]] = None
        try:
            payload = json.loads(response.content) if response.content else None
        except (ValueError, UnicodeDecodeError):
            payload = None
        if isinstance(payload, dict):
            body = payload

        return cls(
            response.status_code,
            response.reason_phrase,
            body,
            headers=response.headers,
        )

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    @property
    def is_forbidden(self) -> bool:
        return self.status == 403

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status < 600

    def __repr__(self) -> str:
        return f"SoundCloudError(status={self.status}, message={str(self)!r})"
