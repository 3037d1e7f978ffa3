"""Google 検索結果 HTML からの結果抽出モジュール.

抽出戦略は SelectorStrategy にまとめてあり、ページレイアウトが変わった場合は
セレクタ定義だけを差し替える。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import parse_qs, urlencode, urljoin, urlparse

from bs4 import BeautifulSoup

from serp_tracker.config import RESULTS_PER_PAGE, SEARCH_LANGUAGE, SEARCH_URL
from serp_tracker.models import SearchResultItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectorStrategy:
    """検索結果1件分の DOM 構造を表すセレクタ定義."""

    containers: tuple[str, ...]
    title: str
    link: str
    snippet: str


DEFAULT_STRATEGY = SelectorStrategy(
    containers=("div.g", "div.MjjYud", "div[data-sokoban-container]"),
    title="h3",
    link="a[href]",
    snippet="div.VwiC3b",
)

CAPTCHA_SELECTORS = ("form#captcha-form", "div#recaptcha")


def build_search_url(keyword: str, page_index: int) -> str:
    """ページ番号（0始まり）に対応する検索 URL を組み立てる."""
    params = {
        "q": keyword,
        "start": page_index * RESULTS_PER_PAGE,
        "hl": SEARCH_LANGUAGE,
    }
    return f"{SEARCH_URL}?{urlencode(params)}"


def is_captcha_page(html: str) -> bool:
    """CAPTCHA フォームが表示されているか判定する."""
    soup = BeautifulSoup(html, "html.parser")
    return any(soup.select_one(sel) is not None for sel in CAPTCHA_SELECTORS)


def parse_search_results(
    html: str,
    base_url: str = SEARCH_URL,
    strategy: SelectorStrategy = DEFAULT_STRATEGY,
) -> list[SearchResultItem]:
    """検索結果 HTML から結果リストを抽出する.

    コンテナはドキュメント順に走査する。タイトルかリンクの欠けた候補は捨て、
    入れ子のコンテナで同じ URL が重複した場合は最初の1件だけを残す。

    Returns:
        SearchResultItem のリスト。該当なしなら空リスト。
    """
    soup = BeautifulSoup(html, "html.parser")
    results: list[SearchResultItem] = []
    seen_urls: set[str] = set()

    for container in soup.select(", ".join(strategy.containers)):
        title_el = container.select_one(strategy.title)
        link_el = container.select_one(strategy.link)
        if title_el is None or link_el is None:
            continue

        url = _resolve_link(link_el["href"], base_url)
        if not url or url in seen_urls:
            continue
        seen_urls.add(url)

        snippet_el = container.select_one(strategy.snippet)
        results.append(SearchResultItem(
            title=_text(title_el),
            url=url,
            snippet=_text(snippet_el) if snippet_el else "",
        ))

    logger.debug("抽出件数: %d", len(results))
    return results


def _text(el) -> str:
    return " ".join(el.get_text(" ").split())


def _resolve_link(href: str, base_url: str) -> str:
    """相対リンクを絶対 URL にし、/url?q= 形式のリダイレクトを展開する."""
    url = urljoin(base_url, href.strip())
    parsed = urlparse(url)
    if parsed.path == "/url" and "google." in parsed.netloc:
        query = parse_qs(parsed.query)
        target = query.get("q") or query.get("url")
        if target:
            return target[0]
    return url
