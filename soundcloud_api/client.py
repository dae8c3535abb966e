import urllib.parse
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional, Union

import httpx

from .config import load_config, retry_policy_from_config, validate_config, with_defaults
from .http import RequestOptions, sc_fetch, sc_fetch_url
from .paginate import FirstPage, Page, fetch_all, paginate, paginate_items
from .refresh import RefreshContext
from .retry import RetryEvent
from .token_manager import TokenInfo, TokenStore

ResourceId = Union[str, int]
ClientRefreshCallback = Callable[["SoundCloudClient"], Awaitable[Union[TokenInfo, Mapping[str, Any]]]]


def _query(path: str, params: Dict[str, Any]) -> str:
    clean = {k: str(v) for k, v in params.items() if v is not None}
    if not clean:
        return path
    return f"{path}?{urllib.parse.urlencode(clean)}"


def _list_path(path: str, limit: Optional[int] = None, **params: Any) -> str:
    """Path for a paginated endpoint (always asks for linked_partitioning)."""
    return _query(path, {"limit": limit or None, **params, "linked_partitioning": "true"})


class SoundCloudClient:
    """SoundCloud API client.

    All endpoint methods are coroutines returning plain JSON dicts/lists.
    Every request goes through ``sc_fetch``, which centralizes:
    - retry with backoff on 429 (honoring Retry-After) and 5xx
    - one transparent token refresh on 401 when ``on_token_refresh`` is set
    - redirect (resolve) and empty-body handling

    Each endpoint takes an optional keyword-only ``token`` that overrides the
    stored access token for that call.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        config_path: Optional[str] = None,
        token_store: Optional[TokenStore] = None,
        on_token_refresh: Optional[ClientRefreshCallback] = None,
        on_debug: Optional[Callable[[RetryEvent], None]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if config_path is not None:
            # Explicit config entries override the file.
            config = {**load_config(config_path), **(config or {})}
        self.config = with_defaults(config)
        is_valid, errors = validate_config(self.config)
        if not is_valid:
            raise ValueError(f"Invalid SoundCloud config: {'; '.join(errors)}")

        if token_store is None:
            cache_path = self.config["soundcloud_token_cache_path"] if self.config.get("soundcloud_cache_tokens") else None
            token_store = TokenStore(cache_path=cache_path)
            token_store.load()
        self.tokens = token_store

        self.retry = retry_policy_from_config(self.config, on_debug=on_debug)

        async def refresh_cb():
            return await on_token_refresh(self)

        self._refresh = RefreshContext(self.tokens, refresh_cb if on_token_refresh else None, self.retry)

        self._owns_http_client = http_client is None
        self._http_client = http_client

    # -----------------
    # Lifecycle
    # -----------------

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=float(self.config["soundcloud_timeout"]),
                follow_redirects=False,
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "SoundCloudClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # -----------------
    # Token management
    # -----------------

    def set_token(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        self.tokens.set_token(access_token, refresh_token)

    def clear_token(self) -> None:
        self.tokens.clear()

    @property
    def access_token(self) -> Optional[str]:
        return self.tokens.access_token

    @property
    def refresh_token(self) -> Optional[str]:
        return self.tokens.refresh_token

    def _resolve_token(self, token: Optional[str]) -> str:
        resolved = token or self.tokens.access_token
        if not resolved:
            raise RuntimeError("No SoundCloud access token available. Call set_token() or pass token= explicitly.")
        return resolved

    # -----------------
    # HTTP helpers
    # -----------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        body: Any = None,
        content_type: Optional[str] = None,
    ) -> Any:
        """Make an authenticated API request and return the interpreted result."""

        options = RequestOptions(
            path=path,
            method=method,
            token=self._resolve_token(token),
            body=body,
            content_type=content_type,
        )
        return await sc_fetch(options, self._refresh, http_client=self._get_http_client())

    async def _get(self, path: str, token: Optional[str]) -> Any:
        return await self.request("GET", path, token=token)

    def _fetch_next(self) -> Callable[[str], Awaitable[Page]]:
        # Token is captured once, when traversal starts.
        token = self.tokens.access_token
        client = self._get_http_client()

        async def fetch_next(url: str) -> Page:
            return await sc_fetch_url(url, token, self.retry, http_client=client)

        return fetch_next

    # -----------------
    # Pagination
    # -----------------

    def paginate(self, first_page: FirstPage) -> AsyncIterator[List[Any]]:
        """Yield each page's collection, following next_href.

        async for page in client.paginate(lambda: client.search_tracks("lofi")):
            ...
        """
        return paginate(first_page, self._fetch_next())

    def paginate_items(self, first_page: FirstPage) -> AsyncIterator[Any]:
        return paginate_items(first_page, self._fetch_next())

    async def fetch_all(self, first_page: FirstPage, *, max_items: Optional[int] = None) -> List[Any]:
        return await fetch_all(first_page, self._fetch_next(), max_items=max_items)

    # -----------------
    # Me
    # -----------------

    async def get_me(self, *, token: Optional[str] = None) -> Dict[str, Any]:
        return await self._get("/me", token)

    async def get_activities(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/activities", limit), token)

    async def get_activities_own(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/activities/all/own", limit), token)

    async def get_activities_tracks(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/activities/tracks", limit), token)

    async def get_my_tracks(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/tracks", limit), token)

    async def get_my_playlists(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/playlists", limit), token)

    async def get_my_likes_tracks(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/likes/tracks", limit), token)

    async def get_my_likes_playlists(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/likes/playlists", limit), token)

    async def get_my_followings(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/followings", limit), token)

    async def get_my_followings_tracks(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/followings/tracks", limit), token)

    async def get_my_followers(self, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path("/me/followers", limit), token)

    async def follow(self, user_urn: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("PUT", f"/me/followings/{user_urn}", token=token)

    async def unfollow(self, user_urn: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("DELETE", f"/me/followings/{user_urn}", token=token)

    # -----------------
    # Users
    # -----------------

    async def get_user(self, user_id: ResourceId, *, token: Optional[str] = None) -> Dict[str, Any]:
        return await self._get(f"/users/{user_id}", token)

    async def get_user_tracks(self, user_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path(f"/users/{user_id}/tracks", limit), token)

    async def get_user_playlists(self, user_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path(f"/users/{user_id}/playlists", limit, show_tracks="false"), token)

    async def get_user_followers(self, user_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path(f"/users/{user_id}/followers", limit), token)

    async def get_user_followings(self, user_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path(f"/users/{user_id}/followings", limit), token)

    async def get_user_likes_tracks(
        self,
        user_id: ResourceId,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        *,
        token: Optional[str] = None,
    ) -> Page:
        return await self._get(_list_path(f"/users/{user_id}/likes/tracks", limit, cursor=cursor), token)

    async def get_user_likes_playlists(self, user_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path(f"/users/{user_id}/likes/playlists", limit), token)

    async def get_user_web_profiles(self, user_id: ResourceId, *, token: Optional[str] = None) -> List[Dict[str, Any]]:
        return await self._get(f"/users/{user_id}/web-profiles", token)

    # -----------------
    # Tracks
    # -----------------

    async def get_track(self, track_id: ResourceId, *, token: Optional[str] = None) -> Dict[str, Any]:
        return await self._get(f"/tracks/{track_id}", token)

    async def get_track_streams(self, track_id: ResourceId, *, token: Optional[str] = None) -> Dict[str, Any]:
        return await self._get(f"/tracks/{track_id}/streams", token)

    async def get_track_comments(self, track_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path(f"/tracks/{track_id}/comments", limit, threaded=1, filter_replies=0), token)

    async def create_comment(
        self,
        track_id: ResourceId,
        body: str,
        timestamp: Optional[int] = None,
        *,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        comment: Dict[str, Any] = {"body": body}
        if timestamp is not None:
            comment["timestamp"] = timestamp
        return await self.request("POST", f"/tracks/{track_id}/comments", token=token, body={"comment": comment})

    async def get_track_likes(self, track_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path(f"/tracks/{track_id}/favoriters", limit), token)

    async def get_track_reposts(self, track_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path(f"/tracks/{track_id}/reposters", limit), token)

    async def get_related_tracks(self, track_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> List[Dict[str, Any]]:
        return await self._get(_query(f"/tracks/{track_id}/related", {"limit": limit or None}), token)

    async def update_track(self, track_id: ResourceId, params: Dict[str, Any], *, token: Optional[str] = None) -> Dict[str, Any]:
        return await self.request("PUT", f"/tracks/{track_id}", token=token, body={"track": params})

    async def delete_track(self, track_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("DELETE", f"/tracks/{track_id}", token=token)

    # -----------------
    # Playlists
    # -----------------

    async def get_playlist(self, playlist_id: ResourceId, *, token: Optional[str] = None) -> Dict[str, Any]:
        return await self._get(f"/playlists/{playlist_id}", token)

    async def get_playlist_tracks(
        self,
        playlist_id: ResourceId,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        *,
        token: Optional[str] = None,
    ) -> Page:
        return await self._get(_list_path(f"/playlists/{playlist_id}/tracks", limit, offset=offset or None), token)

    async def get_playlist_reposts(self, playlist_id: ResourceId, limit: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._get(_list_path(f"/playlists/{playlist_id}/reposters", limit), token)

    async def create_playlist(self, params: Dict[str, Any], *, token: Optional[str] = None) -> Dict[str, Any]:
        return await self.request("POST", "/playlists", token=token, body={"playlist": params})

    async def update_playlist(self, playlist_id: ResourceId, params: Dict[str, Any], *, token: Optional[str] = None) -> Dict[str, Any]:
        return await self.request("PUT", f"/playlists/{playlist_id}", token=token, body={"playlist": params})

    async def delete_playlist(self, playlist_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("DELETE", f"/playlists/{playlist_id}", token=token)

    # -----------------
    # Search
    # -----------------

    async def _search(self, kind: str, query: str, page_number: Optional[int], token: Optional[str]) -> Page:
        offset = 10 * page_number if page_number and page_number > 0 else None
        return await self._get(_list_path(f"/{kind}", 10, q=query, offset=offset), token)

    async def search_tracks(self, query: str, page_number: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._search("tracks", query, page_number, token)

    async def search_users(self, query: str, page_number: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._search("users", query, page_number, token)

    async def search_playlists(self, query: str, page_number: Optional[int] = None, *, token: Optional[str] = None) -> Page:
        return await self._search("playlists", query, page_number, token)

    # -----------------
    # Resolve
    # -----------------

    async def resolve_url(self, url: str, *, token: Optional[str] = None) -> str:
        """Resolve a soundcloud.com URL to its API resource URL (302 Location)."""
        return await self._get(_query("/resolve", {"url": url}), token)

    # -----------------
    # Likes / reposts
    # -----------------

    async def like_track(self, track_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("POST", f"/likes/tracks/{track_id}", token=token)

    async def unlike_track(self, track_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("DELETE", f"/likes/tracks/{track_id}", token=token)

    async def like_playlist(self, playlist_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("POST", f"/likes/playlists/{playlist_id}", token=token)

    async def unlike_playlist(self, playlist_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("DELETE", f"/likes/playlists/{playlist_id}", token=token)

    async def repost_track(self, track_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("POST", f"/reposts/tracks/{track_id}", token=token)

    async def unrepost_track(self, track_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("DELETE", f"/reposts/tracks/{track_id}", token=token)

    async def repost_playlist(self, playlist_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("POST", f"/reposts/playlists/{playlist_id}", token=token)

    async def unrepost_playlist(self, playlist_id: ResourceId, *, token: Optional[str] = None) -> None:
        await self.request("DELETE", f"/reposts/playlists/{playlist_id}", token=token)
