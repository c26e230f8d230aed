"""
Travel assistant for the chat screen

Turns a message into assistant replies: Google Maps search/directions links,
cruise product suggestions, or a Gemini answer for everything else.
"""

import logging
import re
from typing import Optional
from urllib.parse import quote, urlencode

import httpx
from sqlalchemy.orm import Session

from ..config import GEMINI_API_KEY, GEMINI_MODEL
from ..domain.mall.repository import MallRepository

logger = logging.getLogger(__name__)

GMAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="
GMAPS_DIRECTIONS_URL = "https://www.google.com/maps/dir/?api=1&"
GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

# search keyword -> Korean display label
KEYWORD_LABELS = {
    "맛집": "맛집",
    "식당": "맛집",
    "restaurant": "맛집",
    "food": "맛집",
    "dining": "맛집",
    "카페": "카페",
    "cafe": "카페",
    "coffee": "카페",
    "관광지": "관광지",
    "명소": "관광지",
    "tourist": "관광지",
    "attraction": "관광지",
    "sightseeing": "관광지",
    "은행": "은행",
    "bank": "은행",
    "병원": "병원",
    "hospital": "병원",
    "clinic": "병원",
    "주유소": "주유소",
    "gas station": "주유소",
    "마트": "마트",
    "supermarket": "마트",
    "grocery": "마트",
    "약국": "약국",
    "pharmacy": "약국",
    "drugstore": "약국",
    "호텔": "호텔",
    "hotel": "호텔",
}

CRUISE_KEYWORDS = ("크루즈", "cruise", "선박", "여행상품", "상품")

CITY_PRESETS = {
    "부산": {"cruise": "부산항국제여객터미널", "airport": "김해국제공항"},
    "인천": {"cruise": "인천항크루즈터미널", "airport": "인천국제공항"},
    "제주": {"cruise": "제주항 크루즈터미널", "airport": "제주국제공항"},
    "속초": {"cruise": "속초항국제크루즈터미널", "airport": "양양국제공항"},
    "홍콩": {"cruise": "Kai Tak Cruise Terminal", "airport": "Hong Kong International Airport"},
    "싱가포르": {"cruise": "Marina Bay Cruise Centre Singapore", "airport": "Singapore Changi Airport"},
    "상하이": {"cruise": "Shanghai Wusongkou International Cruise Terminal", "airport": "Shanghai Pudong International Airport"},
    "요코하마": {"cruise": "Osanbashi Yokohama International Passenger Terminal", "airport": "Haneda Airport"},
    "후쿠오카": {"cruise": "Hakata Port International Terminal", "airport": "Fukuoka Airport"},
    "바르셀로나": {"cruise": "Port of Barcelona Cruise Terminal", "airport": "Barcelona El Prat Airport"},
}

CRUISE_TERMINAL_WORDS = ("크루즈", "터미널", "항구", "cruise", "terminal", "port")
AIRPORT_WORDS = ("공항", "airport")

KO_ROUTE_PATTERN = re.compile(
    r"^(.+?)\s*에서\s*(.+?)\s*(?:까지|으로|로)?"
    r"(?:\s*(?:가는\s*길|가는\s*법|가는\s*방법|가려면|가기|길찾기|가줘|알려줘))*\s*[?!.]*$"
)
EN_ROUTE_PATTERN = re.compile(r"from\s+(.+?)\s+to\s+(.+)$", re.IGNORECASE)

FALLBACK_ANSWER = (
    "지금은 답변을 준비하지 못했어요. 길찾기는 '부산에서 해운대 가는 길', "
    "상품 검색은 '크루즈 상품 추천'처럼 물어봐 주세요."
)


def text_message(text: str) -> dict:
    return {"role": "assistant", "type": "text", "text": text}


def links_message(title: str, links: list[dict]) -> dict:
    return {"role": "assistant", "type": "map-links", "title": title, "links": links}


def gm_search_url(query: str) -> str:
    return GMAPS_SEARCH_URL + quote(query)


def gm_directions_url(origin: str, destination: str, travelmode: str) -> str:
    return GMAPS_DIRECTIONS_URL + urlencode(
        {"origin": origin, "destination": destination, "travelmode": travelmode}
    )


# ============================================================================
# PARSING
# ============================================================================


def extract_search_keyword(text: str) -> Optional[str]:
    lowered = text.lower()
    # Longest first so "gas station" wins over shorter overlaps
    for keyword in sorted(KEYWORD_LABELS, key=len, reverse=True):
        if keyword in lowered:
            return keyword
    return None


def parse_origin_destination(text: str) -> tuple[Optional[str], Optional[str]]:
    text = text.strip()
    match = EN_ROUTE_PATTERN.search(text)
    if match:
        return match.group(1).strip(), match.group(2).strip()
    match = KO_ROUTE_PATTERN.match(text)
    if match:
        return match.group(1).strip(), match.group(2).strip()
    return None, None


def resolve_place(place: str) -> str:
    """City + terminal/airport words map to the preset terminal name"""
    lowered = place.lower()
    for city, presets in CITY_PRESETS.items():
        if city not in place:
            continue
        if any(word in lowered for word in AIRPORT_WORDS):
            return presets["airport"]
        if any(word in lowered for word in CRUISE_TERMINAL_WORDS):
            return presets["cruise"]
    return place


# ============================================================================
# HANDLERS
# ============================================================================


def handle_keyword_search(text: str, origin: Optional[str] = None) -> list[dict]:
    keyword = extract_search_keyword(text)
    if not keyword:
        return [text_message("키워드를 찾을 수 없습니다. 맛집, 관광지, 카페 등을 입력해 주세요.")]

    location = origin or parse_origin_destination(text)[0] or "현재 위치"
    label = KEYWORD_LABELS[keyword]
    query = f"{location} {label}" if location != "현재 위치" else label

    return [
        text_message(f"{location} 근처 **{label}** 검색 결과를 준비했습니다."),
        links_message(
            f"주변 {label} 검색",
            [{"label": f"🔎 {location} 근처 {label} 찾기", "href": gm_search_url(query), "kind": "search"}],
        ),
    ]


def handle_directions(text: str, origin: Optional[str] = None, destination: Optional[str] = None) -> list[dict]:
    if not (origin and destination):
        parsed_origin, parsed_destination = parse_origin_destination(text)
        origin = origin or parsed_origin
        destination = destination or parsed_destination

    if not (origin and destination):
        return [text_message("출발지와 도착지를 알려주세요. 예: '부산역에서 부산 크루즈터미널 가는 길'")]

    origin = resolve_place(origin)
    destination = resolve_place(destination)
    return [
        text_message(f"확인했어요.\n출발지: {origin}\n도착지: {destination}"),
        links_message(
            "길찾기",
            [
                {"label": "🚗 자동차 길찾기", "href": gm_directions_url(origin, destination, "driving"), "kind": "directions"},
                {"label": "🚇 대중교통 길찾기", "href": gm_directions_url(origin, destination, "transit"), "kind": "directions"},
                {"label": "🚶 도보 길찾기", "href": gm_directions_url(origin, destination, "walking"), "kind": "directions"},
            ],
        ),
    ]


def mentions_cruise(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in CRUISE_KEYWORDS)


def handle_product_search(db: Session, text: str) -> list[dict]:
    query = text
    for word in CRUISE_KEYWORDS + ("추천", "검색", "찾아줘", "보여줘"):
        query = re.sub(re.escape(word), " ", query, flags=re.IGNORECASE)
    query = " ".join(query.split())

    products = MallRepository.search_products(db, query or None, limit=5)
    if not products and query:
        products = MallRepository.search_products(db, None, limit=5)
    if not products:
        return [text_message("지금 판매 중인 크루즈 상품이 없어요.")]

    return [
        text_message(f"크루즈 상품 {len(products)}개를 찾았어요."),
        {
            "role": "assistant",
            "type": "products",
            "products": [
                {
                    "product_code": p.product_code,
                    "title": p.title,
                    "departure_date": p.departure_date.isoformat() if p.departure_date else None,
                    "nights": p.nights,
                    "price": p.base_price,
                }
                for p in products
            ],
        },
    ]


async def ask_gemini(text: str) -> Optional[str]:
    if not GEMINI_API_KEY:
        return None

    payload = {
        "contents": [
            {
                "parts": [
                    {
                        "text": (
                            "You are a friendly Korean cruise travel assistant. Answer in Korean, "
                            f"briefly and practically.\n\nQuestion: {text[:2000]}"
                        )
                    }
                ]
            }
        ]
    }
    try:
        async with httpx.AsyncClient(timeout=20.0) as client:
            response = await client.post(
                GEMINI_API_URL.format(model=GEMINI_MODEL), params={"key": GEMINI_API_KEY}, json=payload
            )
        if response.status_code != 200:
            logger.warning(f"⚠️ Gemini returned {response.status_code}: {response.text[:200]}")
            return None
        data = response.json()
        parts = data.get("candidates", [{}])[0].get("content", {}).get("parts", [])
        answer = "".join(p.get("text", "") for p in parts).strip()
        return answer or None
    except (httpx.HTTPError, ValueError, IndexError) as e:
        logger.error(f"❌ Gemini request failed: {e}")
        return None


async def answer(
    db: Session,
    text: str,
    mode: Optional[str] = None,
    origin: Optional[str] = None,
    destination: Optional[str] = None,
) -> list[dict]:
    if mode == "go":
        if extract_search_keyword(text):
            return handle_keyword_search(text, origin)
        return handle_directions(text, origin, destination)

    if mode == "product" or mentions_cruise(text):
        return handle_product_search(db, text)

    reply = await ask_gemini(text)
    return [text_message(reply or FALLBACK_ANSWER)]
