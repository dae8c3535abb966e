import asyncio
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

import httpx

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from soundcloud_api.errors import SoundCloudError
from soundcloud_api.http import RequestOptions, sc_fetch
from soundcloud_api.refresh import RefreshContext
from soundcloud_api.retry import RetryPolicy
from soundcloud_api.token_manager import TokenInfo, TokenStore

FAST = RetryPolicy(max_retries=2, retry_base_delay_ms=0)


class TokenAwareApi:
    """Fake API: requests with a token in ``valid`` succeed, others get 401."""

    def __init__(self, valid=("new",), statuses=None):
        self.valid = set(valid)
        self.statuses = list(statuses or [])
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.statuses:
            return httpx.Response(self.statuses.pop(0))
        auth = request.headers.get("Authorization", "")
        if auth.removeprefix("OAuth ") in self.valid:
            return httpx.Response(200, json={"id": 1, "auth": auth})
        return httpx.Response(401, json={"error_code": "invalid_token"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class CountingRefresh:
    def __init__(self, payload):
        self.payload = payload
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(0)
        return self.payload


class TestTokenRefresh(unittest.IsolatedAsyncioTestCase):
    async def test_401_refreshes_once_and_reissues_with_new_token(self):
        api = TokenAwareApi()
        store = TokenStore(TokenInfo("old", "r1"))
        refresh = CountingRefresh({"access_token": "new", "refresh_token": "r2"})
        ctx = RefreshContext(store, refresh, FAST)

        with patch.object(store, "update", wraps=store.update) as update:
            async with api.client() as client:
                result = await sc_fetch(RequestOptions(path="/me", token=store.access_token), ctx, http_client=client)

        self.assertEqual(result, {"id": 1, "auth": "OAuth new"})
        self.assertEqual(refresh.calls, 1)
        update.assert_called_once_with(TokenInfo("new", "r2"))
        self.assertEqual(len(api.requests), 2)
        self.assertEqual(store.access_token, "new")
        self.assertEqual(store.refresh_token, "r2")

    async def test_second_401_is_final(self):
        api = TokenAwareApi(valid=())
        store = TokenStore(TokenInfo("old", "r1"))
        refresh = CountingRefresh({"access_token": "still-bad"})
        ctx = RefreshContext(store, refresh, FAST)

        async with api.client() as client:
            with self.assertRaises(SoundCloudError) as raised:
                await sc_fetch(RequestOptions(path="/me", token="old"), ctx, http_client=client)

        self.assertTrue(raised.exception.is_unauthorized)
        self.assertEqual(raised.exception.error_code, "invalid_token")
        self.assertEqual(refresh.calls, 1)
        self.assertEqual(len(api.requests), 2)

    async def test_401_without_callback_propagates_after_one_attempt(self):
        api = TokenAwareApi()
        ctx = RefreshContext(TokenStore(TokenInfo("old")), None, RetryPolicy(max_retries=3, retry_base_delay_ms=0))

        async with api.client() as client:
            with self.assertRaises(SoundCloudError) as raised:
                await sc_fetch(RequestOptions(path="/me", token="old"), ctx, http_client=client)

        self.assertTrue(raised.exception.is_unauthorized)
        self.assertEqual(len(api.requests), 1)

    async def test_other_errors_do_not_trigger_refresh(self):
        api = TokenAwareApi(statuses=[403])
        refresh = CountingRefresh({"access_token": "new"})
        ctx = RefreshContext(TokenStore(TokenInfo("old")), refresh, FAST)

        async with api.client() as client:
            with self.assertRaises(SoundCloudError) as raised:
                await sc_fetch(RequestOptions(path="/me", token="old"), ctx, http_client=client)

        self.assertTrue(raised.exception.is_forbidden)
        self.assertEqual(refresh.calls, 0)

    async def test_reissued_request_gets_fresh_retry_budget(self):
        # 401, then two 500s and a success on the re-issued request (max_retries=2).
        api = TokenAwareApi(statuses=[401, 500, 500])
        refresh = CountingRefresh({"access_token": "new"})
        ctx = RefreshContext(TokenStore(TokenInfo("old")), refresh, FAST)

        async with api.client() as client:
            result = await sc_fetch(RequestOptions(path="/me", token="old"), ctx, http_client=client)

        self.assertEqual(result["auth"], "OAuth new")
        self.assertEqual(len(api.requests), 4)
        self.assertEqual(refresh.calls, 1)

    async def test_missing_refresh_token_keeps_existing_one(self):
        api = TokenAwareApi()
        store = TokenStore(TokenInfo("old", "keep-me"))
        ctx = RefreshContext(store, CountingRefresh(TokenInfo("new")), FAST)

        async with api.client() as client:
            await sc_fetch(RequestOptions(path="/me", token="old"), ctx, http_client=client)

        self.assertEqual(store.access_token, "new")
        self.assertEqual(store.refresh_token, "keep-me")

    async def test_concurrent_401s_share_one_refresh(self):
        api = TokenAwareApi()
        store = TokenStore(TokenInfo("old"))
        refresh = CountingRefresh({"access_token": "new"})
        ctx = RefreshContext(store, refresh, FAST)

        async with api.client() as client:
            results = await asyncio.gather(
                *[sc_fetch(RequestOptions(path=f"/tracks/{i}", token="old"), ctx, http_client=client) for i in range(3)]
            )

        self.assertEqual(refresh.calls, 1)
        self.assertTrue(all(r["auth"] == "OAuth new" for r in results))

    async def test_explicit_token_401_still_calls_refresh(self):
        api = TokenAwareApi()
        store = TokenStore(TokenInfo("stored-stale"))
        refresh = CountingRefresh({"access_token": "new"})
        ctx = RefreshContext(store, refresh, FAST)

        async with api.client() as client:
            result = await sc_fetch(RequestOptions(path="/me", token="explicit-stale"), ctx, http_client=client)

        self.assertEqual(refresh.calls, 1)
        self.assertEqual(result["auth"], "OAuth new")
        self.assertEqual(store.access_token, "new")

    async def test_tokenless_request_401_still_calls_refresh(self):
        api = TokenAwareApi()
        refresh = CountingRefresh({"access_token": "new"})
        ctx = RefreshContext(TokenStore(TokenInfo("stale")), refresh, RetryPolicy(max_retries=0, retry_base_delay_ms=0))

        async with api.client() as client:
            result = await sc_fetch(RequestOptions(path="/me"), ctx, http_client=client)

        self.assertEqual(refresh.calls, 1)
        self.assertEqual(result["auth"], "OAuth new")

    async def test_later_request_after_a_refresh_refreshes_again(self):
        api = TokenAwareApi(valid=("second",))
        store = TokenStore(TokenInfo("old"))
        payloads = iter([{"access_token": "first"}, {"access_token": "second"}])
        calls = []

        async def refresh():
            calls.append(1)
            return next(payloads)

        ctx = RefreshContext(store, refresh, FAST)

        async with api.client() as client:
            with self.assertRaises(SoundCloudError):
                await sc_fetch(RequestOptions(path="/me", token="old"), ctx, http_client=client)
            result = await sc_fetch(RequestOptions(path="/me", token="explicit"), ctx, http_client=client)

        self.assertEqual(len(calls), 2)
        self.assertEqual(result["auth"], "OAuth second")

    async def test_failed_refresh_lets_waiter_refresh_itself(self):
        api = TokenAwareApi()
        calls = []

        async def flaky_refresh():
            calls.append(1)
            await asyncio.sleep(0)
            if len(calls) == 1:
                raise RuntimeError("refresh endpoint down")
            return {"access_token": "new"}

        ctx = RefreshContext(TokenStore(TokenInfo("old")), flaky_refresh, FAST)

        async with api.client() as client:
            results = await asyncio.gather(
                *[sc_fetch(RequestOptions(path=f"/tracks/{i}", token="old"), ctx, http_client=client) for i in range(2)],
                return_exceptions=True,
            )

        failures = [r for r in results if isinstance(r, Exception)]
        successes = [r for r in results if not isinstance(r, Exception)]
        self.assertEqual(len(calls), 2)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], RuntimeError)
        self.assertEqual(successes[0]["auth"], "OAuth new")
        self.assertEqual(ctx.generation, 1)

    async def test_refresh_keeps_expiry_and_scope(self):
        api = TokenAwareApi()
        store = TokenStore(TokenInfo("old", "r1"))
        ctx = RefreshContext(store, CountingRefresh({"access_token": "new", "expires_in": 3600, "scope": "non-expiring"}), FAST)

        async with api.client() as client:
            await sc_fetch(RequestOptions(path="/me", token="old"), ctx, http_client=client)

        self.assertIsNotNone(store.token.expires_at)
        self.assertEqual(store.token.scope, "non-expiring")
        self.assertEqual(store.refresh_token, "r1")

    async def test_refresh_without_access_token_fails(self):
        api = TokenAwareApi()
        ctx = RefreshContext(TokenStore(TokenInfo("old")), CountingRefresh({"error": "nope"}), FAST)

        async with api.client() as client:
            with self.assertRaises(RuntimeError):
                await sc_fetch(RequestOptions(path="/me", token="old"), ctx, http_client=client)


if __name__ == "__main__":
    unittest.main(verbosity=2)
