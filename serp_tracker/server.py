"""Web フロントエンド — 単発検索・一括検索・順位履歴の表示."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path

import uvicorn
from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from serp_tracker.analyzer import RankingAnalyzer
from serp_tracker.config import (
    BULK_SEARCH_DELAY,
    NUM_PAGES,
    RESULTS_PER_PAGE,
    SERVER_HOST,
    SERVER_PORT,
)
from serp_tracker.logsetup import setup_logging
from serp_tracker.searcher import GoogleSearcher

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

SEARCH_CONFIG = {
    "max_pages": NUM_PAGES,
    "results_per_page": RESULTS_PER_PAGE,
    "delay_between": BULK_SEARCH_DELAY,
}


def _format_date(value: str) -> str:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%Y-%m-%d")


templates.env.filters["date"] = _format_date


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    app.state.searcher = GoogleSearcher()
    app.state.analyzer = RankingAnalyzer()
    try:
        app.state.analyzer.initialize()
    except OSError as e:
        logger.error("Analyzer の初期化に失敗: %s", e)
    logger.info("サーバー起動: http://%s:%d", SERVER_HOST, SERVER_PORT)
    yield
    await app.state.searcher.close()
    logger.info("サーバー停止")


app = FastAPI(title="SERP Rank Tracker", lifespan=lifespan)


def get_searcher(request: Request) -> GoogleSearcher:
    return request.app.state.searcher


def get_analyzer(request: Request) -> RankingAnalyzer:
    return request.app.state.analyzer


def _error(request: Request, message: str, status_code: int = 500):
    return templates.TemplateResponse(
        request, "error.html", {"error": message}, status_code=status_code
    )


async def wait_between_keywords() -> None:
    """一括検索のキーワード間で待機する."""
    await asyncio.sleep(BULK_SEARCH_DELAY)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error("サーバーエラー: %s %s", request.method, request.url.path, exc_info=exc)
    if request.url.path.startswith("/api/"):
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)
    return _error(request, "Internal Server Error")


@app.get("/")
async def index(request: Request):
    return templates.TemplateResponse(request, "index.html", {"config": SEARCH_CONFIG})


@app.post("/search")
async def search(
    request: Request,
    keyword: str = Form(""),
    searcher: GoogleSearcher = Depends(get_searcher),
    analyzer: RankingAnalyzer = Depends(get_analyzer),
):
    keyword = keyword.strip()
    if not keyword:
        return _error(request, "キーワードを入力してください", status_code=400)

    try:
        results = await searcher.search(keyword)
        await asyncio.to_thread(analyzer.save_results, keyword, results)

        ranking = await asyncio.to_thread(analyzer.latest_for, keyword)
        if ranking is None:
            raise LookupError("順位データが見つかりません")
    except (OSError, ValueError, LookupError) as e:
        logger.error("検索エラー: keyword=%s, error=%s", keyword, e)
        return _error(request, str(e))

    return templates.TemplateResponse(request, "results.html", {"ranking": ranking})


@app.get("/bulk-analysis")
async def bulk_analysis(request: Request, analyzer: RankingAnalyzer = Depends(get_analyzer)):
    try:
        groups = await asyncio.to_thread(analyzer.group_by_keyword)
    except (OSError, ValueError) as e:
        logger.error("一括分析エラー: %s", e)
        return _error(request, str(e))

    keyword_data = {
        keyword: [
            {"rank": r.rank, "date": r.timestamp, "url": r.url, "title": r.title}
            for r in records
            if r.rank is not None
        ]
        for keyword, records in groups.items()
    }
    logger.info("一括分析: %d キーワード", len(keyword_data))
    return templates.TemplateResponse(
        request,
        "bulk_analysis.html",
        {"keyword_data": keyword_data, "config": SEARCH_CONFIG},
    )


@app.post("/bulk-search")
async def bulk_search(
    request: Request,
    keywords: str = Form(""),
    searcher: GoogleSearcher = Depends(get_searcher),
    analyzer: RankingAnalyzer = Depends(get_analyzer),
):
    keyword_list = [k.strip() for k in keywords.split("\n") if k.strip()]
    logger.info("一括検索開始: %d キーワード", len(keyword_list))

    try:
        for keyword in keyword_list:
            logger.info("検索中: keyword=%s (最大 %d ページ)", keyword, NUM_PAGES)
            results = await searcher.search(keyword, NUM_PAGES)
            await asyncio.to_thread(analyzer.save_results, keyword, results)
            await wait_between_keywords()
    except (OSError, ValueError) as e:
        logger.error("一括検索エラー: %s", e)
        return _error(request, str(e))

    return RedirectResponse("/bulk-analysis", status_code=303)


@app.get("/api/rankings")
async def api_rankings(analyzer: RankingAnalyzer = Depends(get_analyzer)):
    try:
        groups = await asyncio.to_thread(analyzer.group_by_keyword, True)
    except (OSError, ValueError) as e:
        logger.error("API エラー: %s", e)
        return JSONResponse({"error": str(e)}, status_code=500)
    return {keyword: [r.to_dict() for r in records] for keyword, records in groups.items()}


@app.get("/api/summary")
async def api_summary(analyzer: RankingAnalyzer = Depends(get_analyzer)):
    try:
        summary = await asyncio.to_thread(analyzer.get_keyword_summary)
    except (OSError, ValueError) as e:
        logger.error("API エラー: %s", e)
        return JSONResponse({"error": str(e)}, status_code=500)
    return {keyword: data.to_dict() for keyword, data in summary.items()}


def serve() -> None:
    """uvicorn でサーバーを起動する."""
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)


if __name__ == "__main__":
    serve()
