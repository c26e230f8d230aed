import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from cruisemall.bot_detection import BotBlockMiddleware, is_bot, is_scraper_tool, is_suspicious_request

CHROME = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36"


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        (None, False),
        ("   ", False),
        (CHROME, False),
        ("Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)", False),
        ("Mozilla/5.0 (compatible; SomeCrawler/1.0)", True),
        ("python-requests/2.32.0", True),
        ("curl/8.5.0", True),
        ("Go-http-client/1.1", True),
        ("MyCustomApp/1.0", False),
    ],
)
def test_is_bot(user_agent, expected):
    assert is_bot(user_agent) is expected


def test_scraper_tools_and_suspicious_requests():
    assert is_scraper_tool("Wget/1.21")
    assert is_scraper_tool("HeadlessChrome/120")
    assert not is_scraper_tool(CHROME)
    assert not is_scraper_tool("")

    assert is_suspicious_request(CHROME, {"accept": "x-custom/weird"})
    assert not is_suspicious_request(CHROME, {"accept": "text/html,application/xhtml+xml"})
    assert not is_suspicious_request(CHROME, {})
    assert not is_suspicious_request(None, {"accept": "x-custom/weird"})


@pytest.fixture()
def guarded_client():
    app = FastAPI()
    app.add_middleware(BotBlockMiddleware, public_prefixes=["/api/public/"], read_only_prefixes=["/api/mall/"])

    @app.get("/api/public/page")
    def public_page():
        return {"ok": True}

    @app.get("/api/mall/products")
    def products():
        return {"ok": True}

    @app.post("/api/mall/checkout")
    def checkout():
        return {"ok": True}

    return TestClient(app)


def test_middleware_blocks_bots_on_guarded_routes(guarded_client):
    bot = {"user-agent": "python-requests/2.32.0"}

    blocked = guarded_client.get("/api/public/page", headers=bot)
    assert blocked.status_code == 403
    assert blocked.json() == {"ok": False, "error": "Access denied"}
    assert guarded_client.get("/api/mall/products", headers=bot).status_code == 403

    # Catalog prefixes only guard reads
    assert guarded_client.post("/api/mall/checkout", headers=bot).status_code == 200
    assert guarded_client.get("/api/public/page", headers={"user-agent": CHROME}).status_code == 200


def test_middleware_blocks_browser_with_unusual_accept_header(guarded_client):
    odd = {"user-agent": CHROME, "accept": "x-custom/weird"}
    assert guarded_client.get("/api/public/page", headers=odd).status_code == 403

    normal = {"user-agent": CHROME, "accept": "text/html,application/xhtml+xml"}
    assert guarded_client.get("/api/public/page", headers=normal).status_code == 200
