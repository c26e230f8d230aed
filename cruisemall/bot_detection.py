"""
Bot and scraper detection based on User-Agent, plus a middleware that blocks
them from public catalog and landing-page routes
"""

import logging
import re
from typing import Callable, Mapping, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

logger = logging.getLogger(__name__)

ALLOWED_BOT_NAMES = [
    "googlebot",
    "bingbot",
    "slurp",  # Yahoo
    "duckduckbot",
    "baiduspider",
    "yandexbot",
    "sogou",
    "exabot",
    "facebot",
    "ia_archiver",
]

BLOCKED_BOT_NAMES = [
    "scraper",
    "crawler",
    "spider",
    "bot",
    "curl",
    "wget",
    "python-requests",
    "python-urllib",
    "java",
    "go-http-client",
    "node-fetch",
    "axios",
    "postman",
    "insomnia",
    "httpie",
    "rest-client",
    "apache-httpclient",
    "okhttp",
    "scrapy",
    "beautifulsoup",
    "selenium",
    "puppeteer",
    "playwright",
    "headless",
    "phantomjs",
    "casperjs",
    "nightmare",
    "webdriver",
    "chromedriver",
    "geckodriver",
]

BROWSER_PATTERN = re.compile(r"mozilla|chrome|safari|firefox|edge|opera|msie|trident", re.IGNORECASE)
BOT_WORD_PATTERN = re.compile(r"bot|crawler|spider|scraper", re.IGNORECASE)
ALLOWED_BOT_PATTERN = re.compile("|".join(ALLOWED_BOT_NAMES), re.IGNORECASE)
BLOCKED_BOT_PATTERN = re.compile("|".join(re.escape(n) for n in ALLOWED_BOT_NAMES + BLOCKED_BOT_NAMES), re.IGNORECASE)
SCRAPER_PATTERN = re.compile(
    r"curl|wget|python-requests|python-urllib|scrapy|beautifulsoup|selenium|puppeteer|playwright"
    r"|headless|phantomjs|casperjs|nightmare|webdriver|chromedriver|geckodriver|postman|insomnia"
    r"|httpie|rest-client",
    re.IGNORECASE,
)


def is_bot(user_agent: Optional[str]) -> bool:
    """
    Empty user agents pass. Browser-looking agents pass unless they call
    themselves a bot/crawler/spider/scraper. Search engines pass.
    """
    if not user_agent or not user_agent.strip():
        return False

    if BROWSER_PATTERN.search(user_agent) and not BOT_WORD_PATTERN.search(user_agent):
        return False

    if ALLOWED_BOT_PATTERN.search(user_agent):
        return False

    return bool(BLOCKED_BOT_PATTERN.search(user_agent))


def is_suspicious_request(user_agent: Optional[str], headers: Mapping[str, str]) -> bool:
    """Only an Accept header naming no usual media type is suspicious"""
    if not user_agent or not user_agent.strip():
        return False

    accept = headers.get("accept") or headers.get("Accept")
    if accept:
        accept = accept.lower()
        if not any(token in accept for token in ("*", "text", "application", "image", "json")):
            return True

    return False


def is_scraper_tool(user_agent: Optional[str]) -> bool:
    if not user_agent or not user_agent.strip():
        return False
    return bool(SCRAPER_PATTERN.search(user_agent))


class BotBlockMiddleware(BaseHTTPMiddleware):
    """Reject bots on public prefixes (all methods) and read-only catalog prefixes (GET)"""

    def __init__(self, app, public_prefixes: list[str], read_only_prefixes: Optional[list[str]] = None):
        super().__init__(app)
        self.public_prefixes = public_prefixes
        self.read_only_prefixes = read_only_prefixes or []

    def _guarded(self, request: Request) -> bool:
        path = request.url.path
        if any(path.startswith(p) for p in self.public_prefixes):
            return True
        return request.method == "GET" and any(path.startswith(p) for p in self.read_only_prefixes)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if self._guarded(request):
            user_agent = request.headers.get("user-agent")
            if is_bot(user_agent) or is_scraper_tool(user_agent) or is_suspicious_request(user_agent, request.headers):
                logger.warning(f"🤖 Blocked bot request to {request.url.path}: {user_agent[:80]}")
                return JSONResponse(status_code=403, content={"ok": False, "error": "Access denied"})
        return await call_next(request)
