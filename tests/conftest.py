import json

import pytest

from serp_tracker.analyzer import RankingAnalyzer


@pytest.fixture
def analyzer(tmp_path):
    a = RankingAnalyzer(data_dir=tmp_path / "data", target_domain="webreinvent.com")
    a.initialize()
    return a


@pytest.fixture
def write_store():
    """ストアファイルを直接書き換える."""

    def _write(analyzer, records):
        analyzer.results_file.write_text(json.dumps(records, indent=2), encoding="utf-8")

    return _write


