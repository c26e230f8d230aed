"""Google Sheets (REST v4) client and sales sheet export"""

import logging
from datetime import datetime
from typing import Optional
from urllib.parse import quote

import httpx

from ..config import GOOGLE_SALES_SPREADSHEET_ID
from ..shared.dates import local_now
from .google_auth import GoogleAuthError, ServiceAccountCredentials

logger = logging.getLogger(__name__)

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
SALES_COLUMNS = "A:J"
SALES_HEADERS = [
    "판매ID",
    "판매일",
    "상품코드",
    "고객ID",
    "순매출",
    "판매금액",
    "대리점장ID",
    "판매원ID",
    "상태",
    "확정일시",
]


class GoogleSheetsClient:
    def __init__(self, credentials: Optional[ServiceAccountCredentials] = None):
        self.credentials = credentials or ServiceAccountCredentials()

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        headers = await self.credentials.auth_headers()
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.request(method, url, headers=headers, **kwargs)
        response.raise_for_status()
        return response.json()

    async def append_rows(self, spreadsheet_id: str, range_: str, rows: list[list]) -> dict:
        return await self._request(
            "POST",
            f"{SHEETS_API}/{spreadsheet_id}/values/{quote(range_)}:append",
            params={"valueInputOption": "USER_ENTERED", "insertDataOption": "INSERT_ROWS"},
            json={"values": rows},
        )

    async def get_values(self, spreadsheet_id: str, range_: str) -> list[list]:
        data = await self._request("GET", f"{SHEETS_API}/{spreadsheet_id}/values/{quote(range_)}")
        return data.get("values", [])

    async def get_spreadsheet(self, spreadsheet_id: str) -> dict:
        return await self._request(
            "GET",
            f"{SHEETS_API}/{spreadsheet_id}",
            params={"fields": "properties.title,sheets.properties"},
        )

    async def add_sheet(self, spreadsheet_id: str, title: str) -> dict:
        return await self._request(
            "POST",
            f"{SHEETS_API}/{spreadsheet_id}:batchUpdate",
            json={"requests": [{"addSheet": {"properties": {"title": title}}}]},
        )

    async def update_values(self, spreadsheet_id: str, range_: str, rows: list[list]) -> dict:
        return await self._request(
            "PUT",
            f"{SHEETS_API}/{spreadsheet_id}/values/{quote(range_)}",
            params={"valueInputOption": "RAW"},
            json={"values": rows},
        )


def sale_row(sale: dict) -> list:
    return [
        sale.get("id"),
        sale.get("sale_date"),
        sale.get("product_code"),
        sale.get("lead_id"),
        sale.get("net_revenue"),
        sale.get("sale_amount"),
        sale.get("manager_id"),
        sale.get("agent_id"),
        sale.get("status"),
        sale.get("confirmed_at"),
    ]


def monthly_sheet_name(sale_date=None, now: Optional[datetime] = None) -> str:
    """YYYY-MM of the sale date, else of now"""
    if sale_date:
        try:
            return datetime.fromisoformat(str(sale_date)).strftime("%Y-%m")
        except ValueError:
            logger.warning(f"⚠️ Unparseable sale date {sale_date!r}, using current month")
    return (now or local_now()).strftime("%Y-%m")


async def ensure_monthly_sheet(sheets, spreadsheet_id: str, sheet_name: str) -> bool:
    """Create the month's sheet with a header row when missing. Returns True when created."""
    meta = await sheets.get_spreadsheet(spreadsheet_id)
    titles = {s.get("properties", {}).get("title") for s in meta.get("sheets", [])}
    if sheet_name in titles:
        return False

    await sheets.add_sheet(spreadsheet_id, sheet_name)
    await sheets.update_values(spreadsheet_id, f"'{sheet_name}'!A1:J1", [SALES_HEADERS])
    logger.info(f"📋 Created sales sheet {sheet_name}")
    return True


async def append_sale_to_spreadsheet(sale: dict, sheets: Optional[GoogleSheetsClient] = None) -> bool:
    """Append one confirmed sale to its monthly sales sheet. No-op when no spreadsheet is configured."""
    if not GOOGLE_SALES_SPREADSHEET_ID:
        return False

    sheets = sheets or GoogleSheetsClient()
    sheet_name = monthly_sheet_name(sale.get("sale_date"))
    try:
        await ensure_monthly_sheet(sheets, GOOGLE_SALES_SPREADSHEET_ID, sheet_name)
        await sheets.append_rows(
            GOOGLE_SALES_SPREADSHEET_ID, f"'{sheet_name}'!{SALES_COLUMNS}", [sale_row(sale)]
        )
    except (httpx.HTTPError, GoogleAuthError) as e:
        logger.error(f"❌ Failed to append sale {sale.get('id')} to spreadsheet: {e}")
        return False

    logger.info(f"📋 Sale {sale.get('id')} appended to sales sheet {sheet_name}")
    return True
