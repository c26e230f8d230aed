from urllib.parse import parse_qs, urlparse

import pytest

from cruisemall.models_mall import CruiseProduct
from cruisemall.services import chat_assistant
from cruisemall.services.chat_assistant import (
    FALLBACK_ANSWER,
    extract_search_keyword,
    parse_origin_destination,
    resolve_place,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("부산역에서 해운대로 가는 길", ("부산역", "해운대")),
        ("부산역에서 부산 크루즈터미널 가는 길 알려줘", ("부산역", "부산 크루즈터미널")),
        ("서울역에서 인천공항까지", ("서울역", "인천공항")),
        ("from Marina Bay Sands to Singapore cruise terminal", ("Marina Bay Sands", "Singapore cruise terminal")),
        ("해운대 맛집", (None, None)),
    ],
)
def test_parse_origin_destination(text, expected):
    assert parse_origin_destination(text) == expected


def test_keyword_and_place_resolution():
    assert extract_search_keyword("Is there a gas station nearby?") == "gas station"
    assert extract_search_keyword("근처 카페 어디야") == "카페"
    assert extract_search_keyword("안녕하세요") is None

    assert resolve_place("부산 크루즈터미널") == "부산항국제여객터미널"
    assert resolve_place("인천공항") == "인천국제공항"
    assert resolve_place("해운대") == "해운대"


def test_go_mode_returns_direction_links(client):
    resp = client.post(
        "/api/chat",
        json={"text": "길찾기", "mode": "go", "from": "부산역", "to": "부산 크루즈 터미널"},
    )
    messages = resp.json()["messages"]
    assert messages[0]["text"] == "확인했어요.\n출발지: 부산역\n도착지: 부산항국제여객터미널"

    links = messages[1]["links"]
    assert [link["label"] for link in links] == ["🚗 자동차 길찾기", "🚇 대중교통 길찾기", "🚶 도보 길찾기"]
    params = parse_qs(urlparse(links[1]["href"]).query)
    assert params == {
        "api": ["1"],
        "origin": ["부산역"],
        "destination": ["부산항국제여객터미널"],
        "travelmode": ["transit"],
    }


def test_go_mode_keyword_search(client):
    messages = client.post("/api/chat", json={"text": "맛집 추천", "mode": "go"}).json()["messages"]
    assert messages[0]["text"] == "현재 위치 근처 **맛집** 검색 결과를 준비했습니다."
    assert messages[1]["type"] == "map-links"
    assert messages[1]["links"][0]["label"] == "🔎 현재 위치 근처 맛집 찾기"


def test_go_mode_without_places_asks_for_them(client):
    messages = client.post("/api/chat", json={"text": "어디로 가요", "mode": "go"}).json()["messages"]
    assert "출발지와 도착지" in messages[0]["text"]


def test_cruise_question_lists_products(client, db):
    db.add(CruiseProduct(product_code="MSC-01", title="MSC 벨리시마 일본", base_price=990_000, nights=4))
    db.add(CruiseProduct(product_code="OLD-01", title="판매 종료", base_price=1, is_active=False))
    db.commit()

    messages = client.post("/api/chat", json={"text": "크루즈 상품 추천해줘"}).json()["messages"]
    assert messages[1]["type"] == "products"
    assert [p["product_code"] for p in messages[1]["products"]] == ["MSC-01"]


def test_general_question_falls_back_without_gemini(client, monkeypatch):
    monkeypatch.setattr(chat_assistant, "GEMINI_API_KEY", None)
    messages = client.post("/api/chat", json={"text": "날씨 어때?"}).json()["messages"]
    assert messages == [{"role": "assistant", "type": "text", "text": FALLBACK_ANSWER}]


def test_gemini_answer_is_used(client, monkeypatch):
    async def fake_gemini(text):
        return "오늘은 맑아요."

    monkeypatch.setattr(chat_assistant, "ask_gemini", fake_gemini)
    messages = client.post("/api/chat", json={"text": "날씨 어때?"}).json()["messages"]
    assert messages[0]["text"] == "오늘은 맑아요."


def test_empty_text_rejected(client):
    assert client.post("/api/chat", json={"text": "  "}).status_code == 400


def test_history_saved_for_logged_in_user(client, login, make_user):
    assert client.get("/api/chat/history").status_code == 401

    login(make_user())
    client.post("/api/chat", json={"text": "맛집", "mode": "go"})
    history = client.get("/api/chat/history").json()["messages"]
    assert [m["role"] for m in history] == ["user", "assistant"]
    assert history[0]["content"] == "맛집"
    assert "https://www.google.com/maps/search/" in history[1]["content"]
