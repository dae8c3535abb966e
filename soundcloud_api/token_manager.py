import json
import logging
import os
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_CACHE_PATH = os.path.join("data", "soundcloud_tokens.json")


@dataclass(frozen=True)
class TokenInfo:
    """Canonical token payload held by TokenStore."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[float] = None
    scope: Optional[str] = None

    @staticmethod
    def from_token_response(payload: Mapping[str, Any], *, now: Optional[float] = None) -> "TokenInfo":
        """Convert a SoundCloud /oauth2/token response into TokenInfo.

        SoundCloud returns:
        - access_token
        - refresh_token (optional)
        - expires_in (seconds, optional)
        - scope (optional)
        """

        payload = payload or {}
        expires_at = None
        if payload.get("expires_in") is not None:
            now_ts = float(time.time() if now is None else now)
            expires_at = now_ts + float(payload["expires_in"])

        return TokenInfo(
            access_token=str(payload.get("access_token") or ""),
            refresh_token=payload.get("refresh_token") or None,
            expires_at=expires_at,
            scope=payload.get("scope"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "scope": self.scope,
        }


class TokenStore:
    """Mutable holder for the client's current access/refresh token pair.

    Every read of "the current token" and every write after a refresh goes
    through one instance, which the client and its RefreshContext share.
    With ``cache_path`` set, writes are also persisted as JSON.
    """

    def __init__(self, token: Optional[TokenInfo] = None, *, cache_path: Optional[str] = None):
        self.cache_path = cache_path
        self._token = token

    @property
    def token(self) -> Optional[TokenInfo]:
        return self._token

    @property
    def access_token(self) -> Optional[str]:
        return self._token.access_token if self._token and self._token.access_token else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._token.refresh_token if self._token else None

    def set_token(self, access_token: str, refresh_token: Optional[str] = None) -> TokenInfo:
        return self.update(TokenInfo(access_token=access_token, refresh_token=refresh_token))

    def update(self, token: TokenInfo) -> TokenInfo:
        """Make ``token`` current. A missing refresh_token keeps the existing one."""

        if token.refresh_token is None and self._token is not None:
            token = replace(token, refresh_token=self._token.refresh_token)

        self._token = token
        if self.cache_path:
            self.save()
        return self._token

    def clear(self) -> None:
        self._token = None
        if self.cache_path and os.path.exists(self.cache_path):
            try:
                os.remove(self.cache_path)
            except OSError as e:
                logger.warning("Could not remove token cache %s: %s", self.cache_path, e)

    def load(self) -> Optional[TokenInfo]:
        """Load cached token info from disk, if present, and make it current."""

        if not self.cache_path or not os.path.exists(self.cache_path):
            return None

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable token cache %s: %s", self.cache_path, e)
            return None

        if not isinstance(data, dict) or not data.get("access_token"):
            return None

        expires_at = data.get("expires_at")
        self._token = TokenInfo(
            access_token=str(data["access_token"]),
            refresh_token=data.get("refresh_token"),
            expires_at=float(expires_at) if expires_at is not None else None,
            scope=data.get("scope"),
        )
        return self._token

    def save(self) -> bool:
        """Persist the current token to ``cache_path``."""

        if not self.cache_path or self._token is None:
            return False

        try:
            cache_dir = os.path.dirname(self.cache_path)
            if cache_dir:
                os.makedirs(cache_dir, exist_ok=True)
            with open(self.cache_path, "w", encoding="utf-8") as f:
                json.dump(self._token.to_dict(), f, indent=2)
            return True
        except OSError as e:
            logger.warning("Could not write token cache %s: %s", self.cache_path, e)
            return False
