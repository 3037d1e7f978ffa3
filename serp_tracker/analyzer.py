"""順位ストアの管理とレポート生成モジュール.

ストアは rankings.json（RankingRecord の JSON 配列）1ファイル。
レコードは追記のみで、既存レコードの更新・削除は行わない。
"""

from __future__ import annotations

import csv
import json
import logging
import os
import sys
import tempfile
import threading
import time
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import TextIO

from serp_tracker.config import DATA_DIR, RANKINGS_FILENAME, TARGET_DOMAIN
from serp_tracker.models import HistoryEntry, KeywordSummary, RankingRecord, SearchResultItem

logger = logging.getLogger(__name__)

CSV_HEADER = ["Keyword", "Rank", "Title", "URL", "Date", "Snippet"]

TREND_IMPROVED = "improved"
TREND_DROPPED = "dropped"
TREND_NO_CHANGE = "no change"
TREND_NA = "N/A"


def _parse_timestamp(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def find_rank(
    results: list[SearchResultItem], target_domain: str
) -> tuple[int | None, SearchResultItem | None]:
    """URL に target_domain を含む最初の結果の順位を見つける.

    Returns:
        (順位（1始まり）, 該当結果)。見つからなければ (None, None)。
    """
    for i, item in enumerate(results, start=1):
        if target_domain in item.url:
            return i, item
    return None, None


def compute_trend(latest: int | None, previous: int | None) -> str:
    """最新順位と前回順位を比較する. 数値が小さいほど上位."""
    if latest is None or previous is None:
        return TREND_NA
    if latest < previous:
        return TREND_IMPROVED
    if latest > previous:
        return TREND_DROPPED
    return TREND_NO_CHANGE


class RankingAnalyzer:
    """順位ストアの読み書きと集計を行う."""

    def __init__(self, data_dir: Path = DATA_DIR, target_domain: str = TARGET_DOMAIN):
        self.data_dir = Path(data_dir)
        self.results_file = self.data_dir / RANKINGS_FILENAME
        self.target_domain = target_domain
        # ストアへの書き込みは常に1つだけ
        self._write_lock = threading.Lock()

    def initialize(self) -> None:
        """保存先ディレクトリと空のストアを作成する."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            if not self.results_file.exists():
                self._write_all([])
        except OSError as e:
            logger.error("ストアの初期化に失敗: %s", e)
            raise

    def save_results(self, keyword: str, results: list[SearchResultItem]) -> RankingRecord:
        """検索結果から順位を判定し、ストアに1件追記する."""
        timestamp = datetime.now(timezone.utc).isoformat()
        rank, matched = find_rank(results, self.target_domain)

        if matched is not None:
            record = RankingRecord(
                keyword=keyword,
                rank=rank,
                title=matched.title,
                url=matched.url,
                timestamp=timestamp,
                snippet=matched.snippet or "",
            )
            logger.info("%s の順位: %d 位 (keyword=%s)", self.target_domain, rank, keyword)
        else:
            record = RankingRecord(
                keyword=keyword,
                rank=None,
                title=None,
                url=None,
                timestamp=timestamp,
                snippet=None,
            )
            logger.warning("%s は圏外 (keyword=%s)", self.target_domain, keyword)

        try:
            with self._write_lock:
                rankings = self._read_raw()
                rankings.append(record.to_dict())
                self._write_all(rankings)
        except (OSError, ValueError) as e:
            logger.error("順位の保存に失敗: keyword=%s, error=%s", keyword, e)
            raise

        return record

    def load_rankings(self) -> list[RankingRecord]:
        """ストアの全レコードを追記順に返す."""
        try:
            return [RankingRecord.from_dict(r) for r in self._read_raw()]
        except (OSError, ValueError) as e:
            logger.error("ストアの読み込みに失敗: %s", e)
            raise

    def group_by_keyword(self, ascending: bool = True) -> dict[str, list[RankingRecord]]:
        """キーワード単位でまとめ、各グループを日時順に並べる."""
        groups: dict[str, list[RankingRecord]] = defaultdict(list)
        for record in self.load_rankings():
            groups[record.keyword].append(record)
        for records in groups.values():
            records.sort(key=lambda r: _parse_timestamp(r.timestamp), reverse=not ascending)
        return dict(groups)

    def latest_for(self, keyword: str) -> RankingRecord | None:
        """キーワードの最新レコードを返す."""
        records = self.group_by_keyword(ascending=False).get(keyword)
        return records[0] if records else None

    def generate_report(self, format: str = "console", out: TextIO | None = None) -> Path | None:
        """レポートを出力する.

        Args:
            format: "console" または "csv"
            out: console 出力先（省略時は標準出力）

        Returns:
            csv の場合は出力したファイルパス。それ以外・データなしは None。
        """
        if format not in ("console", "csv"):
            raise ValueError(f"未対応のレポート形式: {format}")

        rankings = self.load_rankings()
        if not rankings:
            logger.warning("順位データがありません")
            return None

        if format == "csv":
            return self._write_csv(rankings)

        self._print_console(out or sys.stdout)
        return None

    def _print_console(self, out: TextIO) -> None:
        out.write("\nRanking Report:\n")
        out.write("==============\n\n")

        for keyword, records in self.group_by_keyword(ascending=False).items():
            out.write(f"Keyword: {keyword}\n")
            out.write("-------------------\n")

            latest = records[0]
            out.write(f"Latest Rank: {latest.rank if latest.rank is not None else 'Not Found'}\n")
            if latest.rank is not None:
                out.write(f"Title: {latest.title}\n")
                out.write(f"URL: {latest.url}\n")

            if len(records) > 1:
                trend = compute_trend(latest.rank, records[1].rank)
                out.write(f"Trend: {trend}\n")
            out.write("\n")

    def _write_csv(self, rankings: list[RankingRecord]) -> Path:
        path = self.data_dir / f"rankings_{int(time.time() * 1000)}.csv"
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_HEADER)
            for r in rankings:
                writer.writerow([r.keyword, r.rank, r.title, r.url, r.timestamp, r.snippet])
        logger.info("CSV レポート出力: %s", path)
        return path

    def get_keyword_summary(self) -> dict[str, KeywordSummary]:
        """キーワードごとの現在・最高・最低順位と履歴を集計する."""
        summary: dict[str, KeywordSummary] = {}
        for record in self.load_rankings():
            data = summary.setdefault(record.keyword, KeywordSummary())
            if record.rank is not None:
                data.history.append(HistoryEntry(rank=record.rank, date=record.timestamp))

        for data in summary.values():
            if not data.history:
                continue
            data.history.sort(key=lambda h: _parse_timestamp(h.date), reverse=True)
            ranks = [h.rank for h in data.history]
            data.current = ranks[0]
            data.best = min(ranks)
            data.worst = max(ranks)

        return summary

    def _read_raw(self) -> list[dict]:
        with open(self.results_file, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"ストアの形式が不正です: {self.results_file}")
        return data

    def _write_all(self, rankings: list[dict]) -> None:
        """一時ファイルに書いてから置き換える."""
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=".rankings_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rankings, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.results_file)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
