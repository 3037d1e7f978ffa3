"""ロギング設定.

コンソール出力に加え、コンポーネントごとに独立したログファイルへ追記する:
  - search.log   : serp_tracker.searcher / serp_tracker.notifier
  - analyzer.log : serp_tracker.analyzer
  - server.log   : serp_tracker.server / serp_tracker.main
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from serp_tracker.config import LOG_DIR

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

COMPONENT_LOGS = {
    "search.log": ("serp_tracker.searcher", "serp_tracker.notifier"),
    "analyzer.log": ("serp_tracker.analyzer",),
    "server.log": ("serp_tracker.server", "serp_tracker.main"),
}


def setup_logging(log_dir: Path = LOG_DIR, level: int = logging.INFO) -> None:
    """ロギングの初期設定. 複数回呼んでもハンドラは重複しない."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)
    for filename, logger_names in COMPONENT_LOGS.items():
        path = (log_dir / filename).resolve()
        for name in logger_names:
            logger = logging.getLogger(name)
            already = any(
                isinstance(h, logging.FileHandler) and Path(h.baseFilename) == path
                for h in logger.handlers
            )
            if already:
                continue
            handler = logging.FileHandler(path, mode="a", encoding="utf-8")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
