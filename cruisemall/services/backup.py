"""
Backups to Google Drive

Database tables and configured spreadsheets are exported as XLSX workbooks
(openpyxl) and uploaded into dated Drive folders.
"""

import json
import re
import logging
import time
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from typing import Optional

import httpx
from openpyxl import Workbook
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import GOOGLE_DRIVE_BACKUP_FOLDER_ID
from ..database import Base
from ..models_mall import BackupLog
from ..security_utils import sanitize_filename
from .google_auth import GoogleAuthError
from .google_drive import XLSX_MIME_TYPE

logger = logging.getLogger(__name__)

BACKUP_TABLES = [
    "users",
    "affiliate_profiles",
    "affiliate_relations",
    "affiliate_leads",
    "affiliate_interactions",
    "affiliate_sales",
    "commission_ledgers",
    "partner_customer_groups",
    "landing_pages",
    "landing_page_registrations",
    "funnel_messages",
    "scheduled_messages",
    "cruise_products",
    "payments",
    "passport_submissions",
    "passport_submission_guests",
]

MAX_SHEET_TITLE = 31
NO_DATA = "No data"
# openpyxl rejects these in worksheet titles
INVALID_SHEET_TITLE_CHARS = re.compile(r"[\[\]:*?/\\]")


def cell_value(value):
    """Workbook-safe representation of a column value"""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def worksheet_title(title: str) -> str:
    return INVALID_SHEET_TITLE_CHARS.sub("_", title)[:MAX_SHEET_TITLE] or "Sheet"


def workbook_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def table_to_xlsx(db: Session, table_name: str) -> tuple[bytes, int]:
    table = Base.metadata.tables[table_name]
    columns = [c.name for c in table.columns]
    rows = db.execute(select(table)).all()

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = table_name[:MAX_SHEET_TITLE]
    sheet.append(columns)
    for row in rows:
        sheet.append([cell_value(v) for v in row])
    return workbook_bytes(workbook), len(rows)


async def dated_folders(drive, now: datetime) -> str:
    month_folder = await drive.find_or_create_folder(
        f"DB_Backup_{now.strftime('%Y-%m')}", GOOGLE_DRIVE_BACKUP_FOLDER_ID
    )
    return await drive.find_or_create_folder(f"Backup_{now.strftime('%Y-%m-%d')}", month_folder)


async def run_database_backup(db: Session, drive, now: Optional[datetime] = None, tables: Optional[list] = None) -> dict:
    now = now or datetime.now()
    tables = tables or BACKUP_TABLES
    started = time.monotonic()
    stamp = now.strftime("%Y-%m-%d_%H-%M-%S")

    results = []
    try:
        folder_id = await dated_folders(drive, now)
    except (httpx.HTTPError, GoogleAuthError) as e:
        logger.error(f"❌ Backup folder setup failed: {e}")
        summary = {
            "timestamp": now.isoformat(),
            "total_tables": len(tables),
            "success_count": 0,
            "failure_count": len(tables),
            "results": [{"table": t, "ok": False, "error": str(e)} for t in tables],
            "duration": round(time.monotonic() - started, 2),
        }
        _save_log(db, "database", summary, error_message=str(e))
        return summary

    for table_name in tables:
        file_name = f"{table_name}_{stamp}.xlsx"
        try:
            content, row_count = table_to_xlsx(db, table_name)
            upload = await drive.upload_file(folder_id, file_name, XLSX_MIME_TYPE, content)
            if upload["ok"]:
                results.append({"table": table_name, "ok": True, "rows": row_count, "file_id": upload["file_id"]})
            else:
                results.append({"table": table_name, "ok": False, "error": upload["error"]})
        except Exception as e:
            logger.error(f"❌ Backup of table {table_name} failed: {e}")
            results.append({"table": table_name, "ok": False, "error": str(e)})

    success_count = sum(1 for r in results if r["ok"])
    summary = {
        "timestamp": now.isoformat(),
        "total_tables": len(tables),
        "success_count": success_count,
        "failure_count": len(tables) - success_count,
        "results": results,
        "duration": round(time.monotonic() - started, 2),
    }
    _save_log(db, "database", summary)
    logger.info(f"🗄️ Database backup finished: {success_count}/{len(tables)} tables in {summary['duration']}s")
    return summary


async def spreadsheet_to_xlsx(sheets, spreadsheet_id: str) -> tuple[str, bytes]:
    meta = await sheets.get_spreadsheet(spreadsheet_id)
    title = meta.get("properties", {}).get("title") or spreadsheet_id

    workbook = Workbook()
    workbook.remove(workbook.active)
    for sheet_meta in meta.get("sheets", []):
        sheet_title = sheet_meta.get("properties", {}).get("title", "Sheet")
        worksheet = workbook.create_sheet(title=worksheet_title(sheet_title))
        try:
            values = await sheets.get_values(spreadsheet_id, f"'{sheet_title}'")
        except (httpx.HTTPError, GoogleAuthError) as e:
            logger.warning(f"⚠️ Could not read sheet '{sheet_title}' of {spreadsheet_id}: {e}")
            worksheet.append([f"Error: {e}"])
            continue
        if not values:
            worksheet.append([NO_DATA])
            continue
        for row in values:
            worksheet.append(row)

    if not workbook.worksheets:
        workbook.create_sheet(title="Sheet1").append([NO_DATA])
    return title, workbook_bytes(workbook)


async def run_spreadsheet_backup(drive, sheets, spreadsheet_ids: list, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now()
    started = time.monotonic()
    stamp = now.strftime("%Y-%m-%d_%H-%M-%S")

    results = []
    folder_id = None
    for spreadsheet_id in spreadsheet_ids:
        try:
            if folder_id is None:
                month_folder = await drive.find_or_create_folder(
                    f"Sheet_Backup_{now.strftime('%Y-%m')}", GOOGLE_DRIVE_BACKUP_FOLDER_ID
                )
                folder_id = await drive.find_or_create_folder(f"Backup_{now.strftime('%Y-%m-%d')}", month_folder)
            title, content = await spreadsheet_to_xlsx(sheets, spreadsheet_id)
            file_name = f"{sanitize_filename(title)}_{stamp}.xlsx"
            upload = await drive.upload_file(folder_id, file_name, XLSX_MIME_TYPE, content)
            results.append(
                {"spreadsheet_id": spreadsheet_id, "ok": upload["ok"], "file_id": upload["file_id"], "error": upload["error"]}
            )
        except Exception as e:
            logger.error(f"❌ Spreadsheet backup of {spreadsheet_id} failed: {e}")
            results.append({"spreadsheet_id": spreadsheet_id, "ok": False, "file_id": None, "error": str(e)})

    success_count = sum(1 for r in results if r["ok"])
    summary = {
        "timestamp": now.isoformat(),
        "total": len(spreadsheet_ids),
        "success_count": success_count,
        "failure_count": len(spreadsheet_ids) - success_count,
        "results": results,
        "duration": round(time.monotonic() - started, 2),
    }
    logger.info(f"📋 Spreadsheet backup finished: {success_count}/{len(spreadsheet_ids)}")
    return summary


def _save_log(db: Session, backup_type: str, summary: dict, error_message: Optional[str] = None):
    db.add(
        BackupLog(
            backup_type=backup_type,
            total_tables=summary["total_tables"],
            success_count=summary["success_count"],
            failure_count=summary["failure_count"],
            duration_seconds=summary["duration"],
            results=summary["results"],
            error_message=error_message,
        )
    )
    db.commit()
