"""設定モジュール — 環境変数・定数定義."""

import os
from pathlib import Path

from dotenv import load_dotenv

# .env はプロジェクトルートに配置
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- 順位計測対象 ---
TARGET_DOMAIN: str = os.environ.get("TARGET_DOMAIN", "webreinvent.com")

# --- キーワード ---
KEYWORDS_FILE = Path(os.environ.get("KEYWORDS_FILE", _PROJECT_ROOT / "keywords.txt"))
DEFAULT_KEYWORDS = [
    "Laravel development company",
    "Laravel Development Services Company",
    "Laravel development services",
    "Laravel development company in India",
    "Laravel development company in Delhi",
]

# --- Google 検索 ---
SEARCH_URL = "https://www.google.com/search"
SEARCH_LANGUAGE = "en"
NUM_PAGES = int(os.environ.get("NUM_PAGES", "5"))
RESULTS_PER_PAGE = 10

# --- ブラウザ ---
# 未指定なら Playwright 同梱の Chromium を使う
CHROME_PATH: str | None = os.environ.get("CHROME_PATH") or None
# 検出回避のためデフォルトは可視モード
HEADLESS = _env_bool("HEADLESS", False)
BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-infobars",
    "--window-position=0,0",
    "--ignore-certificate-errors",
    "--ignore-certificate-errors-spki-list",
    "--disable-blink-features=AutomationControlled",
]

USER_AGENTS = [
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    ),
    (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) "
        "Gecko/20100101 Firefox/133.0"
    ),
    (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    ),
]

# --- タイムアウト・待機 ---
NAVIGATION_TIMEOUT_MS = 30_000
CAPTCHA_TIMEOUT_MS = 60_000
NAVIGATION_DELAY_MIN = 2.0  # 秒
NAVIGATION_DELAY_MAX = 5.0
PAGE_INTERVAL_MIN = 3.0
PAGE_INTERVAL_MAX = 7.0
KEYWORD_INTERVAL = float(os.environ.get("KEYWORD_INTERVAL", "60"))
BULK_SEARCH_DELAY = float(os.environ.get("BULK_SEARCH_DELAY", "3"))

# --- CAPTCHA 通知 ---
CAPTCHA_WEBHOOK_URL: str | None = os.environ.get("CAPTCHA_WEBHOOK_URL") or None
WEBHOOK_TIMEOUT = 10  # 秒

# --- 保存先 ---
DATA_DIR = Path(os.environ.get("DATA_DIR", _PROJECT_ROOT / "data"))
RANKINGS_FILENAME = "rankings.json"

# --- Web サーバー ---
SERVER_HOST = os.environ.get("SERVER_HOST", "127.0.0.1")
SERVER_PORT = int(os.environ.get("SERVER_PORT", "3000"))

# --- ログ ---
LOG_DIR = Path(os.environ.get("LOG_DIR", _PROJECT_ROOT / "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)
