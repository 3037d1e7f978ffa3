"""Google 検索結果のブラウザ取得モジュール.

取得戦略:
  1. Playwright の Chromium を1つだけ起動し、呼び出し間で使い回す
  2. 結果ページごとにコンテキストとページを作り、終了時に必ず閉じる
  3. コンテキストごとにランダム待機・User-Agent 切り替え・指紋偽装を行う
  4. CAPTCHA 検出時は通知して手動解決を待つ（上限付き）
"""

from __future__ import annotations

import asyncio
import enum
import logging
import random
from typing import Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from serp_tracker.config import (
    BROWSER_ARGS,
    CAPTCHA_TIMEOUT_MS,
    CHROME_PATH,
    HEADLESS,
    NAVIGATION_DELAY_MAX,
    NAVIGATION_DELAY_MIN,
    NAVIGATION_TIMEOUT_MS,
    NUM_PAGES,
    PAGE_INTERVAL_MAX,
    PAGE_INTERVAL_MIN,
    USER_AGENTS,
)
from serp_tracker.extractor import build_search_url, is_captcha_page, parse_search_results
from serp_tracker.models import SearchResultItem
from serp_tracker.notifier import notify_captcha

logger = logging.getLogger(__name__)

# 新しいドキュメントの読み込みごとに実行される
FINGERPRINT_SCRIPT = """
Object.defineProperty(navigator, 'languages', { get: () => ['en-US', 'en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
Object.defineProperty(HTMLCanvasElement.prototype, 'toDataURL', {
    get: () => () => 'data:image/png;base64,abc123'
});
"""


class CaptchaState(enum.Enum):
    """CAPTCHA 対応の状態."""

    IDLE = "idle"
    WAITING = "waiting"
    SOLVED = "solved"
    TIMED_OUT = "timed_out"


async def wait_interval(low: float, high: float) -> float:
    """low〜high 秒ランダムで待機し、待機秒数を返す."""
    delay = random.uniform(low, high)
    await asyncio.sleep(delay)
    return delay


class GoogleSearcher:
    """Google 検索結果をページ単位で取得する."""

    def __init__(
        self,
        executable_path: str | None = CHROME_PATH,
        headless: bool = HEADLESS,
        notify: Callable[[str, str], object] = notify_captcha,
    ):
        self.executable_path = executable_path
        self.headless = headless
        self.notify = notify
        self.captcha_state = CaptchaState.IDLE
        self._playwright = None
        self._browser = None
        # ブラウザは1つなので検索は直列化する
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def initialize(self) -> None:
        """ブラウザを起動する. 起動に失敗した場合は Playwright も停止する."""
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                executable_path=self.executable_path,
                args=BROWSER_ARGS,
            )
        except Exception:
            await self._playwright.stop()
            self._playwright = None
            raise
        logger.info(
            "ブラウザ起動: headless=%s, executable=%s",
            self.headless, self.executable_path or "(bundled)",
        )

    async def search(self, keyword: str, num_pages: int = NUM_PAGES) -> list[SearchResultItem]:
        """キーワードの検索結果を num_pages ページ分取得する.

        例外は送出しない。途中で失敗した場合はそれまでに取得できた結果を返す。
        """
        async with self._lock:
            return await self._search(keyword, num_pages)

    async def _search(self, keyword: str, num_pages: int) -> list[SearchResultItem]:
        results: list[SearchResultItem] = []

        try:
            if self._browser is None:
                await self.initialize()

            for page_index in range(num_pages):
                page_results = await self._fetch_page(keyword, page_index)
                results.extend(page_results)
                logger.info("検索結果: page=%d, %d 件", page_index + 1, len(page_results))

                if page_index < num_pages - 1:
                    delay = await wait_interval(PAGE_INTERVAL_MIN, PAGE_INTERVAL_MAX)
                    logger.info("次ページまで %.1f 秒待機しました", delay)

        except Exception as e:
            logger.error("検索失敗: keyword=%s, error=%s", keyword, e)

        return results

    async def _fetch_page(self, keyword: str, page_index: int) -> list[SearchResultItem]:
        """結果1ページ分を取得する.

        ページごとにコンテキストを作り直し、User-Agent と navigator.userAgent を一致させる。
        """
        context = None
        page = None
        try:
            context = await self._browser.new_context(
                user_agent=random.choice(USER_AGENTS),
                locale="en-US",
                no_viewport=True,
            )
            await context.add_init_script(FINGERPRINT_SCRIPT)
            page = await context.new_page()

            url = build_search_url(keyword, page_index)
            logger.info("検索中: keyword=%s, page=%d", keyword, page_index + 1)
            await wait_interval(NAVIGATION_DELAY_MIN, NAVIGATION_DELAY_MAX)
            await page.goto(url, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)

            html = await page.content()
            if is_captcha_page(html):
                html = await self._wait_for_captcha(page, keyword)

            return parse_search_results(html, base_url=page.url) if html else []
        finally:
            await self._release(page, context)

    async def _wait_for_captcha(self, page, keyword: str) -> str | None:
        """CAPTCHA の手動解決を待つ.

        Returns:
            解決後のページ HTML。タイムアウト時は None。
        """
        self.captcha_state = CaptchaState.WAITING
        await asyncio.to_thread(self.notify, keyword, page.url)
        logger.info("CAPTCHA 解決待ち: 最大 %d 秒", CAPTCHA_TIMEOUT_MS // 1000)

        try:
            await page.wait_for_event("load", timeout=CAPTCHA_TIMEOUT_MS)
            await page.wait_for_load_state("networkidle", timeout=NAVIGATION_TIMEOUT_MS)
        except PlaywrightTimeoutError:
            self.captcha_state = CaptchaState.TIMED_OUT
            logger.error("CAPTCHA 解決待ちタイムアウト: keyword=%s", keyword)
            return None

        self.captcha_state = CaptchaState.SOLVED
        logger.info("CAPTCHA 解決を確認: keyword=%s", keyword)
        return await page.content()

    async def _release(self, page, context) -> None:
        """ページとコンテキストを閉じる. 片方の失敗でもう片方を残さない."""
        for resource in (page, context):
            if resource is None:
                continue
            try:
                await resource.close()
            except PlaywrightError as e:
                logger.warning("ページのクローズに失敗: %s", e)

    async def close(self) -> None:
        """ブラウザを終了する. 未起動なら何もしない."""
        try:
            if self._browser is not None:
                browser, self._browser = self._browser, None
                await browser.close()
                logger.info("ブラウザ終了")
        finally:
            if self._playwright is not None:
                playwright, self._playwright = self._playwright, None
                await playwright.stop()
