"""データモデル定義."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime


@dataclass
class SearchResultItem:
    """検索結果ページの1件を表す."""

    title: str
    url: str
    snippet: str = ""


@dataclass(frozen=True)
class RankingRecord:
    """ストアに追記する順位レコード. 書き込み後は変更しない."""

    keyword: str
    rank: int | None  # None = 圏外
    title: str | None
    url: str | None
    timestamp: str  # ISO 8601
    snippet: str | None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> RankingRecord:
        """ストアの1要素からレコードを作る. 形式が不正なら ValueError."""
        if not isinstance(data, dict):
            raise ValueError(f"レコードが object ではありません: {data!r}")
        keyword = data.get("keyword")
        timestamp = data.get("timestamp")
        rank = data.get("rank")
        if not isinstance(keyword, str) or not isinstance(timestamp, str):
            raise ValueError(f"keyword / timestamp が不正です: {data!r}")
        if rank is not None and (not isinstance(rank, int) or isinstance(rank, bool)):
            raise ValueError(f"rank が不正です: {data!r}")
        # 並び替えで使うので日時として解釈できることを確認する
        datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return cls(
            keyword=keyword,
            rank=rank,
            title=data.get("title"),
            url=data.get("url"),
            timestamp=timestamp,
            snippet=data.get("snippet"),
        )


@dataclass
class HistoryEntry:
    """キーワードサマリの履歴1件."""

    rank: int
    date: str  # ISO 8601


@dataclass
class KeywordSummary:
    """キーワード単位の集計結果（保存はしない）."""

    current: int | None = None
    best: int | None = None
    worst: int | None = None
    history: list[HistoryEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
