"""CAPTCHA 発生時のオペレーター通知."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import requests

from serp_tracker.config import CAPTCHA_WEBHOOK_URL, WEBHOOK_TIMEOUT

logger = logging.getLogger(__name__)


def notify_captcha(
    keyword: str, page_url: str, webhook_url: str | None = CAPTCHA_WEBHOOK_URL
) -> bool:
    """CAPTCHA の手動解決を依頼する.

    Webhook 未設定時はログ出力のみ。送信失敗は例外にせず False を返す。

    Returns:
        Webhook へ送信できたら True。
    """
    logger.warning("CAPTCHA 検出: keyword=%s, url=%s。ブラウザで解決してください", keyword, page_url)
    if not webhook_url:
        return False

    payload = {
        "event": "captcha_detected",
        "keyword": keyword,
        "page_url": page_url,
        "detected_at": datetime.now(timezone.utc).isoformat(),
    }
    try:
        resp = requests.post(webhook_url, json=payload, timeout=WEBHOOK_TIMEOUT)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error("CAPTCHA 通知の送信失敗: url=%s, error=%s", webhook_url, e)
        return False
    return True
