"""searcher モジュールのモックテスト. 実ブラウザは起動しない."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from serp_tracker.config import USER_AGENTS
from serp_tracker.searcher import CaptchaState, GoogleSearcher

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _load_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


def _make_browser(contents):
    """new_context → new_page のチェーンを持つブラウザのモックを作る."""
    page = MagicMock()
    page.url = "https://www.google.com/search?q=laravel"
    page.goto = AsyncMock()
    page.content = AsyncMock(side_effect=contents)
    page.set_extra_http_headers = AsyncMock()
    page.wait_for_event = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.close = AsyncMock()

    context = MagicMock()
    context.add_init_script = AsyncMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()

    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()
    return browser, context, page


@pytest.fixture
def no_wait():
    with patch("serp_tracker.searcher.wait_interval", new=AsyncMock(return_value=0.0)) as m:
        yield m


class TestSearch:
    """search のテスト."""

    async def test_collects_all_pages(self, no_wait):
        html = _load_fixture("search_results.html")
        browser, context, page = _make_browser([html, html])
        searcher = GoogleSearcher(notify=MagicMock())
        searcher._browser = browser

        results = await searcher.search("laravel", num_pages=2)

        assert len(results) == 8
        assert results[2].url == "https://www.webreinvent.com/laravel-development-company"
        urls = [c.args[0] for c in page.goto.await_args_list]
        assert "start=0" in urls[0]
        assert "start=10" in urls[1]
        assert page.goto.await_args_list[0].kwargs == {"wait_until": "networkidle", "timeout": 30_000}

    async def test_delays(self, no_wait):
        """ナビゲーション前に毎回、ページ間は最後以外で待機すること."""
        html = _load_fixture("search_results.html")
        browser, _, _ = _make_browser([html] * 3)
        searcher = GoogleSearcher(notify=MagicMock())
        searcher._browser = browser

        await searcher.search("laravel", num_pages=3)

        ranges = [c.args for c in no_wait.await_args_list]
        assert ranges.count((2.0, 5.0)) == 3
        assert ranges.count((3.0, 7.0)) == 2

    async def test_fingerprint_and_user_agent(self, no_wait):
        """ページごとに新しいコンテキストを作り、UA はコンテキスト単位で設定すること."""
        html = _load_fixture("search_results.html")
        browser, context, page = _make_browser([html, html])
        searcher = GoogleSearcher(notify=MagicMock())
        searcher._browser = browser

        await searcher.search("laravel", num_pages=2)

        assert browser.new_context.await_count == 2
        for c in browser.new_context.await_args_list:
            assert c.kwargs["user_agent"] in USER_AGENTS
        script = context.add_init_script.await_args.args[0]
        assert "webdriver" in script
        assert "toDataURL" in script
        # HTTP ヘッダーだけ UA を変えると navigator.userAgent と食い違う
        page.set_extra_http_headers.assert_not_called()

    async def test_partial_results_on_error(self, no_wait):
        """途中で失敗しても取得済みの結果を返し、ページを閉じること."""
        html = _load_fixture("search_results.html")
        browser, context, page = _make_browser([html, html])
        page.goto.side_effect = [None, PlaywrightTimeoutError("navigation timeout")]
        searcher = GoogleSearcher(notify=MagicMock())
        searcher._browser = browser

        results = await searcher.search("laravel", num_pages=2)

        assert len(results) == 4
        assert page.close.await_count == 2
        assert context.close.await_count == 2
        # ブラウザは次回以降も使い回す
        assert searcher.is_running

    async def test_context_closed_when_page_close_fails(self, no_wait):
        html = _load_fixture("search_results.html")
        browser, context, page = _make_browser([html])
        page.close.side_effect = PlaywrightError("target closed")
        searcher = GoogleSearcher(notify=MagicMock())
        searcher._browser = browser

        results = await searcher.search("laravel", num_pages=1)

        assert len(results) == 4
        context.close.assert_awaited_once()

    async def test_launch_failure_returns_empty(self):
        searcher = GoogleSearcher(notify=MagicMock())
        with patch.object(GoogleSearcher, "initialize", new=AsyncMock(side_effect=RuntimeError("no browser"))):
            results = await searcher.search("laravel", num_pages=1)
        assert results == []

    async def test_lazy_initialize_once(self, no_wait):
        html = _load_fixture("search_results.html")
        browser, _, _ = _make_browser([html, html])
        searcher = GoogleSearcher(notify=MagicMock())

        async def fake_init():
            searcher._browser = browser

        with patch.object(searcher, "initialize", new=AsyncMock(side_effect=fake_init)) as init:
            await searcher.search("a", num_pages=1)
            await searcher.search("b", num_pages=1)

        init.assert_awaited_once()


class TestCaptcha:
    """CAPTCHA 対応のテスト."""

    async def test_timeout_skips_page(self, no_wait):
        captcha = _load_fixture("captcha.html")
        html = _load_fixture("search_results.html")
        browser, _, page = _make_browser([captcha, html])
        page.wait_for_event.side_effect = PlaywrightTimeoutError("captcha timeout")
        notify = MagicMock()
        searcher = GoogleSearcher(notify=notify)
        searcher._browser = browser

        results = await searcher.search("laravel", num_pages=2)

        # 1ページ目は空、2ページ目は取得できる
        assert len(results) == 4
        assert page.goto.await_count == 2
        notify.assert_called_once_with("laravel", page.url)
        assert searcher.captcha_state is CaptchaState.TIMED_OUT
        assert page.wait_for_event.await_args.kwargs["timeout"] == 60_000

    async def test_solved(self, no_wait):
        captcha = _load_fixture("captcha.html")
        html = _load_fixture("search_results.html")
        browser, _, page = _make_browser([captcha, html])
        searcher = GoogleSearcher(notify=MagicMock())
        searcher._browser = browser

        results = await searcher.search("laravel", num_pages=1)

        assert len(results) == 4
        assert searcher.captcha_state is CaptchaState.SOLVED


class TestClose:
    """close のテスト."""

    async def test_idempotent(self):
        searcher = GoogleSearcher()
        browser = MagicMock(close=AsyncMock())
        playwright = MagicMock(stop=AsyncMock())
        searcher._browser = browser
        searcher._playwright = playwright

        await searcher.close()
        await searcher.close()

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert not searcher.is_running

    async def test_not_started(self):
        await GoogleSearcher().close()

    async def test_stops_driver_when_browser_close_fails(self):
        searcher = GoogleSearcher()
        browser = MagicMock(close=AsyncMock(side_effect=PlaywrightError("browser crashed")))
        playwright = MagicMock(stop=AsyncMock())
        searcher._browser = browser
        searcher._playwright = playwright

        with pytest.raises(PlaywrightError):
            await searcher.close()

        playwright.stop.assert_awaited_once()
        assert searcher._playwright is None
        assert not searcher.is_running


def _patch_playwright(launch_side_effect=None):
    """async_playwright().start() が返すドライバのモックを差し込む."""
    driver = MagicMock()
    driver.stop = AsyncMock()
    driver.chromium.launch = AsyncMock(side_effect=launch_side_effect, return_value=MagicMock(close=AsyncMock()))
    starter = MagicMock()
    starter.start = AsyncMock(return_value=driver)
    return patch("serp_tracker.searcher.async_playwright", return_value=starter), starter, driver


class TestInitialize:
    """initialize のテスト."""

    async def test_executable_path(self):
        patcher, _, driver = _patch_playwright()
        searcher = GoogleSearcher(executable_path="/opt/chrome/chrome", headless=True)

        with patcher:
            await searcher.initialize()

        kwargs = driver.chromium.launch.await_args.kwargs
        assert kwargs["executable_path"] == "/opt/chrome/chrome"
        assert kwargs["headless"] is True
        assert "--disable-blink-features=AutomationControlled" in kwargs["args"]
        assert searcher.is_running

    async def test_launch_failure_stops_driver(self):
        """起動失敗のたびに Playwright を停止し、ドライバを残さないこと."""
        patcher, starter, driver = _patch_playwright(PlaywrightError("executable doesn't exist"))
        searcher = GoogleSearcher(executable_path="/bad/path", notify=MagicMock())

        with patcher:
            assert await searcher.search("a", num_pages=1) == []
            assert await searcher.search("b", num_pages=1) == []
            await searcher.close()

        assert starter.start.await_count == 2
        assert driver.stop.await_count == 2
        assert searcher._playwright is None
        assert not searcher.is_running
