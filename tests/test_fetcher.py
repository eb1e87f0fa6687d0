import unittest
from unittest.mock import patch

import httpx

from video_proxy.services import fetcher


def mock_client_factory(handler):
    transport = httpx.MockTransport(handler)

    def factory(follow_redirects=True):
        return httpx.AsyncClient(transport=transport, follow_redirects=follow_redirects)

    return factory


def redirect_chain(length, seen):
    """Upstream where /r/N redirects to /r/N+1 until N reaches ``length``."""
    def handler(request):
        seen.append(request.url.path)
        step = int(request.url.path.rsplit("/", 1)[-1])
        if step < length:
            return httpx.Response(302, headers={"Location": f"/r/{step + 1}"})
        return httpx.Response(200, text="<html>final</html>")
    return handler


class TestRedirectResolver(unittest.IsolatedAsyncioTestCase):
    async def test_five_redirects_resolve_to_final_url(self):
        seen = []
        with patch.object(fetcher, "new_client", mock_client_factory(redirect_chain(5, seen))):
            final = await fetcher.resolve_redirect_chain("https://fb.watch/r/0", max_hops=5)
        self.assertEqual(final, "https://fb.watch/r/5")

    async def test_hop_cap_returns_last_seen_url(self):
        seen = []
        with patch.object(fetcher, "new_client", mock_client_factory(redirect_chain(6, seen))):
            final = await fetcher.resolve_redirect_chain("https://fb.watch/r/0", max_hops=5)
        self.assertEqual(final, "https://fb.watch/r/5")
        self.assertEqual(seen, ["/r/0", "/r/1", "/r/2", "/r/3", "/r/4"])

    async def test_default_hop_cap_comes_from_settings(self):
        seen = []
        with patch.object(fetcher.settings, "MAX_REDIRECT_HOPS", 2), \
                patch.object(fetcher, "new_client", mock_client_factory(redirect_chain(6, seen))):
            final = await fetcher.resolve_redirect_chain("https://fb.watch/r/0")
        self.assertEqual(final, "https://fb.watch/r/2")

    async def test_non_redirect_returns_input(self):
        def handler(request):
            return httpx.Response(200, text="ok")

        with patch.object(fetcher, "new_client", mock_client_factory(handler)):
            final = await fetcher.resolve_redirect_chain("https://www.instagram.com/reel/abc/")
        self.assertEqual(final, "https://www.instagram.com/reel/abc/")

    async def test_redirect_without_location_stops(self):
        def handler(request):
            return httpx.Response(302)

        with patch.object(fetcher, "new_client", mock_client_factory(handler)):
            final = await fetcher.resolve_redirect_chain("https://vm.tiktok.com/ZM123/")
        self.assertEqual(final, "https://vm.tiktok.com/ZM123/")

    async def test_absolute_location_to_other_host(self):
        def handler(request):
            if request.url.host == "vm.tiktok.com":
                return httpx.Response(301, headers={"Location": "https://www.tiktok.com/@user/video/42?lang=en"})
            return httpx.Response(200, text="ok")

        with patch.object(fetcher, "new_client", mock_client_factory(handler)):
            final = await fetcher.resolve_redirect_chain("https://vm.tiktok.com/ZM123/")
        self.assertEqual(final, "https://www.tiktok.com/@user/video/42?lang=en")


class TestHostFallback(unittest.TestCase):
    def test_facebook_gets_mobile_and_basic_hosts(self):
        url = "https://www.facebook.com/p/123"
        self.assertEqual(fetcher.alt_hosts(url), [
            url,
            "https://m.facebook.com/p/123",
            "https://mbasic.facebook.com/p/123",
        ])

    def test_query_and_fragment_are_kept(self):
        hosts = fetcher.alt_hosts("https://WWW.Facebook.com/watch/?v=9#top")
        self.assertEqual(hosts[1], "https://m.facebook.com/watch/?v=9#top")
        self.assertEqual(hosts[2], "https://mbasic.facebook.com/watch/?v=9#top")

    def test_mobile_input_is_not_repeated(self):
        url = "https://m.facebook.com/p/123"
        self.assertEqual(fetcher.alt_hosts(url), [url, "https://mbasic.facebook.com/p/123"])

    def test_other_platforms_are_unchanged(self):
        for url in ("https://www.instagram.com/p/abc/", "https://x.com/u/status/1", "https://notfacebook.com/p/1"):
            self.assertEqual(fetcher.alt_hosts(url), [url])


class TestHeadersAndHosts(unittest.TestCase):
    def test_headers_for_sets_referer_and_user_agent(self):
        headers = fetcher.headers_for("m.facebook.com")
        self.assertEqual(headers["Referer"], "https://m.facebook.com/")
        self.assertEqual(headers["User-Agent"], fetcher.settings.USER_AGENT)
        self.assertIn("text/html", headers["Accept"])

    def test_norm_host(self):
        self.assertEqual(fetcher.host_of("https://WWW.TikTok.com/@a"), "tiktok.com")
        self.assertEqual(fetcher.norm_host(None), "")
        self.assertTrue(fetcher.is_facebook("mbasic.facebook.com"))
        self.assertFalse(fetcher.is_facebook("facebook.com.evil.io"))


class TestFirstSuccess(unittest.IsolatedAsyncioTestCase):
    async def test_returns_first_accepted_candidate(self):
        calls = []

        async def attempt(candidate):
            calls.append(candidate)
            if candidate == "a":
                raise httpx.ConnectError("refused")
            return candidate * 3

        found = await fetcher.first_success(["a", "b", "c", "d"], attempt, lambda r: r == "ccc")
        self.assertEqual(found, ("c", "ccc"))
        self.assertEqual(calls, ["a", "b", "c"])

    async def test_returns_none_when_nothing_accepted(self):
        async def attempt(candidate):
            return candidate

        self.assertIsNone(await fetcher.first_success(["a", "b"], attempt, lambda r: False))
        self.assertIsNone(await fetcher.first_success([], attempt, lambda r: True))

    async def test_unexpected_errors_propagate(self):
        async def attempt(candidate):
            raise RuntimeError("parser bug")

        with self.assertRaises(RuntimeError):
            await fetcher.first_success(["a"], attempt, lambda r: True)


class TestFetchHtml(unittest.IsolatedAsyncioTestCase):
    async def test_follows_redirects_with_browser_headers(self):
        seen = []

        def handler(request):
            seen.append(request)
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "/new"})
            return httpx.Response(200, text="<html>page</html>")

        with patch.object(fetcher, "new_client", mock_client_factory(handler)):
            page = await fetcher.fetch_html("https://www.instagram.com/old")

        self.assertEqual(page.status_code, 200)
        self.assertEqual(page.html, "<html>page</html>")
        self.assertEqual(page.url, "https://www.instagram.com/new")
        self.assertEqual(seen[0].headers["Referer"], "https://www.instagram.com/")

    async def test_network_errors_propagate(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        with patch.object(fetcher, "new_client", mock_client_factory(handler)):
            with self.assertRaises(httpx.ConnectError):
                await fetcher.fetch_html("https://www.instagram.com/p/x/")


if __name__ == "__main__":
    unittest.main()
