"""Google 検索順位取得 — バッチ実行エントリーポイント.

処理フロー:
  1. キーワード一覧を読み込む（keywords.txt がなければ既定リスト）
  2. 各キーワードを順番に検索し、対象ドメインの順位をストアに追記
  3. キーワード間は一定時間待機
  4. コンソールと CSV にレポートを出力
  5. 成否にかかわらずブラウザを終了
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

from serp_tracker.analyzer import RankingAnalyzer
from serp_tracker.config import DEFAULT_KEYWORDS, KEYWORD_INTERVAL, KEYWORDS_FILE, NUM_PAGES
from serp_tracker.logsetup import setup_logging
from serp_tracker.searcher import GoogleSearcher

logger = logging.getLogger(__name__)


def load_keywords(path: Path = KEYWORDS_FILE) -> list[str]:
    """1行1キーワードのファイルを読む. ファイルがなければ既定リストを返す."""
    if not path.exists():
        return list(DEFAULT_KEYWORDS)
    keywords = []
    with open(path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                keywords.append(line)
    return keywords


async def run_batch(
    keywords: list[str],
    searcher: GoogleSearcher,
    analyzer: RankingAnalyzer,
    interval: float = KEYWORD_INTERVAL,
    num_pages: int = NUM_PAGES,
) -> bool:
    """キーワード一覧を順番に検索・記録し、レポートを出力する.

    Returns:
        最後まで完了したら True。途中で失敗したら False。
    """
    logger.info("=== 検索順位取得 開始 ===")
    start_time = time.time()

    try:
        analyzer.initialize()

        for i, keyword in enumerate(keywords):
            logger.info("検索中: %s", keyword)
            results = await searcher.search(keyword, num_pages)
            analyzer.save_results(keyword, results)

            if i < len(keywords) - 1:
                await asyncio.sleep(interval)

        logger.info("コンソールレポート出力")
        analyzer.generate_report("console")
        logger.info("CSV レポート出力")
        analyzer.generate_report("csv")

    except Exception:
        logger.exception("バッチ処理中にエラーが発生しました")
        return False
    finally:
        await searcher.close()

    elapsed = time.time() - start_time
    logger.info("=== 検索順位取得 完了 === キーワード: %d 件, 所要時間: %.1f 秒",
                len(keywords), elapsed)
    return True


def run() -> None:
    """メイン処理."""
    parser = argparse.ArgumentParser(description="Google 検索順位のバッチ取得")
    parser.add_argument("--keywords-file", type=Path, default=KEYWORDS_FILE,
                        help="1行1キーワードのファイル")
    parser.add_argument("--pages", type=int, default=NUM_PAGES,
                        help=f"キーワードごとの取得ページ数 (default: {NUM_PAGES})")
    parser.add_argument("--interval", type=float, default=KEYWORD_INTERVAL,
                        help=f"キーワード間の待機秒数 (default: {KEYWORD_INTERVAL:g})")
    args = parser.parse_args()

    setup_logging()
    keywords = load_keywords(args.keywords_file)
    if not keywords:
        logger.warning("キーワードがありません。終了します。")
        return

    ok = asyncio.run(run_batch(
        keywords,
        GoogleSearcher(),
        RankingAnalyzer(),
        interval=args.interval,
        num_pages=args.pages,
    ))
    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    run()
