import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping, Optional, TypeVar, Union

from .errors import SoundCloudError
from .retry import DEFAULT_RETRY_POLICY, RetryPolicy
from .token_manager import TokenInfo, TokenStore

if TYPE_CHECKING:
    from .http import RequestOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")

TokenRefreshCallback = Callable[[], Awaitable[Union[TokenInfo, Mapping[str, Any]]]]


class RefreshContext:
    """Shared per-client state for 401-triggered token refresh.

    ``tokens`` is the client's credential holder: requests read the current
    access token from it and a successful refresh writes the new token back.
    Refreshes are single-flight. Each completed refresh bumps ``generation``;
    a request records the generation before its first attempt, and on a 401
    it only reuses the stored token if a refresh finished since then.
    Otherwise ``on_token_refresh`` is called, whatever token the request sent.
    """

    def __init__(
        self,
        tokens: TokenStore,
        on_token_refresh: Optional[TokenRefreshCallback] = None,
        retry: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        self.tokens = tokens
        self.on_token_refresh = on_token_refresh
        self.retry = retry
        self._lock = asyncio.Lock()
        self._generation = 0

    @property
    def can_refresh(self) -> bool:
        return self.on_token_refresh is not None

    @property
    def generation(self) -> int:
        return self._generation

    async def refresh(self, seen_generation: int) -> str:
        """Return a fresh access token.

        The callback is skipped when a refresh completed after ``seen_generation``.
        """

        if self.on_token_refresh is None:
            raise RuntimeError("No token refresh callback configured.")

        async with self._lock:
            current = self.tokens.access_token
            if self._generation != seen_generation and current:
                logger.debug("Access token already refreshed by a concurrent request")
                return current

            logger.info("SoundCloud returned 401, refreshing access token")
            payload = await self.on_token_refresh()
            token = payload if isinstance(payload, TokenInfo) else TokenInfo.from_token_response(payload)
            if not token.access_token:
                raise RuntimeError("Token refresh callback returned no access_token.")

            self.tokens.update(token)
            self._generation += 1
            return token.access_token


async def with_token_refresh(
    options: "RequestOptions",
    attempt: Callable[["RequestOptions"], Awaitable[T]],
    context: Optional[RefreshContext] = None,
) -> T:
    """Run ``attempt``; on a 401 refresh once and re-run it with the new token.

    The re-issued attempt is final: a second 401 propagates.
    """

    generation = context.generation if context is not None else 0
    try:
        return await attempt(options)
    except SoundCloudError as e:
        if not e.is_unauthorized or context is None or not context.can_refresh:
            raise
        new_token = await context.refresh(generation)

    return await attempt(replace(options, token=new_token))
