import asyncio
from datetime import datetime
from io import BytesIO

import httpx
from openpyxl import load_workbook

from cruisemall.models_mall import BackupLog
from cruisemall.services import google_sheets
from cruisemall.services.backup import cell_value, run_database_backup, run_spreadsheet_backup

NOW = datetime(2026, 5, 10, 3, 0, 5)


class FakeDrive:
    def __init__(self, fail_folder=False, fail_uploads=()):
        self.fail_folder = fail_folder
        self.fail_uploads = set(fail_uploads)
        self.folders = []
        self.uploads = {}

    async def find_or_create_folder(self, name, parent_id=None):
        if self.fail_folder:
            raise httpx.ConnectError("drive unreachable")
        self.folders.append((name, parent_id))
        return f"folder-{len(self.folders)}"

    async def upload_file(self, folder_id, file_name, mime_type, content):
        if any(file_name.startswith(prefix) for prefix in self.fail_uploads):
            return {"ok": False, "file_id": None, "error": "quota exceeded"}
        self.uploads[file_name] = (folder_id, content)
        return {"ok": True, "file_id": f"file-{len(self.uploads)}", "error": None}


class FakeSheets:
    def __init__(self, spreadsheets):
        self.spreadsheets = spreadsheets

    async def get_spreadsheet(self, spreadsheet_id):
        title, _ = self.spreadsheets[spreadsheet_id]
        sheets = self.spreadsheets[spreadsheet_id][1]
        return {"properties": {"title": title}, "sheets": [{"properties": {"title": name}} for name in sheets]}

    async def get_values(self, spreadsheet_id, range_):
        name = range_.strip("'")
        values = self.spreadsheets[spreadsheet_id][1][name]
        if isinstance(values, Exception):
            raise values
        return values


def test_cell_value_serializes_json_and_dates():
    assert cell_value({"a": "한"}) == '{"a": "한"}'
    assert cell_value(datetime(2026, 1, 2, 3, 4)) == "2026-01-02T03:04:00"
    assert cell_value(None) is None
    assert cell_value(5) == 5


def test_database_backup_uploads_each_table(db, make_user):
    make_user(name="백업 대상")
    drive = FakeDrive(fail_uploads=["payments"])

    summary = asyncio.run(run_database_backup(db, drive, now=NOW, tables=["users", "payments"]))

    assert drive.folders == [("DB_Backup_2026-05", None), ("Backup_2026-05-10", "folder-1")]
    assert summary["total_tables"] == 2
    assert summary["success_count"] == 1
    assert summary["failure_count"] == 1
    assert summary["results"][1] == {"table": "payments", "ok": False, "error": "quota exceeded"}

    folder_id, content = drive.uploads["users_2026-05-10_03-00-05.xlsx"]
    assert folder_id == "folder-2"
    sheet = load_workbook(BytesIO(content)).active
    assert sheet.title == "users"
    header = [c.value for c in sheet[1]]
    assert "username" in header
    assert sheet.cell(row=2, column=header.index("name") + 1).value == "백업 대상"

    log = db.query(BackupLog).one()
    assert log.backup_type == "database"
    assert log.success_count == 1


def test_database_backup_folder_failure_fails_every_table(db):
    summary = asyncio.run(run_database_backup(db, FakeDrive(fail_folder=True), now=NOW, tables=["users", "payments"]))
    assert summary["success_count"] == 0
    assert summary["failure_count"] == 2
    assert db.query(BackupLog).one().error_message == "drive unreachable"


def test_spreadsheet_backup_handles_empty_and_broken_sheets():
    sheets = FakeSheets(
        {
            "sheet-1": (
                "매출/정산",
                {
                    "1월": [["날짜", "금액"], ["2026-01-01", "100000"]],
                    "빈 시트": [],
                    "깨진 시트": httpx.ConnectError("timeout"),
                },
            )
        }
    )
    drive = FakeDrive()

    summary = asyncio.run(run_spreadsheet_backup(drive, sheets, ["sheet-1"], now=NOW))
    assert summary["success_count"] == 1
    assert drive.folders[0] == ("Sheet_Backup_2026-05", None)

    [(file_name, (_, content))] = drive.uploads.items()
    assert file_name == "매출_정산_2026-05-10_03-00-05.xlsx"
    workbook = load_workbook(BytesIO(content))
    assert workbook.sheetnames == ["1월", "빈 시트", "깨진 시트"]
    assert workbook["1월"]["B2"].value == "100000"
    assert workbook["빈 시트"]["A1"].value == "No data"
    assert workbook["깨진 시트"]["A1"].value.startswith("Error:")


def test_spreadsheet_backup_reports_unknown_sheet():
    summary = asyncio.run(run_spreadsheet_backup(FakeDrive(), FakeSheets({}), ["missing"], now=NOW))
    assert summary["failure_count"] == 1
    assert summary["results"][0]["ok"] is False


def test_spreadsheet_backup_cleans_sheet_titles_and_continues():
    class BrokenSheets(FakeSheets):
        async def get_spreadsheet(self, spreadsheet_id):
            if spreadsheet_id == "broken":
                raise ValueError("unexpected payload")
            return await super().get_spreadsheet(spreadsheet_id)

    sheets = BrokenSheets(
        {
            "bracketed": ("연간 실적", {"Data [2024]": [["a"]], "Q1: 매출?": [["b"]]}),
            "plain": ("정산", {"시트1": [["c"]]}),
        }
    )
    drive = FakeDrive()

    summary = asyncio.run(run_spreadsheet_backup(drive, sheets, ["bracketed", "broken", "plain"], now=NOW))
    assert [r["ok"] for r in summary["results"]] == [True, False, True]
    assert summary["results"][1]["error"] == "unexpected payload"

    content = drive.uploads["연간 실적_2026-05-10_03-00-05.xlsx"][1]
    assert load_workbook(BytesIO(content)).sheetnames == ["Data _2024_", "Q1_ 매출_"]
    assert "정산_2026-05-10_03-00-05.xlsx" in drive.uploads


def test_backup_endpoints_need_service_account(client, login, make_user):
    login(make_user(role="admin"))
    assert client.post("/api/admin/backup/database").status_code == 503
    assert client.get("/api/admin/backup/logs").json() == {"ok": True, "logs": []}


class RecordingSheets:
    def __init__(self, existing=()):
        self.titles = list(existing)
        self.appended = []
        self.headers = []

    async def get_spreadsheet(self, spreadsheet_id):
        return {"sheets": [{"properties": {"title": t}} for t in self.titles]}

    async def add_sheet(self, spreadsheet_id, title):
        self.titles.append(title)
        return {}

    async def update_values(self, spreadsheet_id, range_, rows):
        self.headers.append((range_, rows))
        return {}

    async def append_rows(self, spreadsheet_id, range_, rows):
        self.appended.append((spreadsheet_id, range_, rows))
        return {}


def test_confirmed_sale_is_appended_to_monthly_sheet(monkeypatch):
    sheets = RecordingSheets(existing=["2026-04"])
    sale = {
        "id": 9,
        "sale_date": "2026-05-03T10:00:00",
        "product_code": "MSC-01",
        "sale_amount": 1_000_000,
        "status": "CONFIRMED",
    }

    assert asyncio.run(google_sheets.append_sale_to_spreadsheet(sale, sheets)) is False
    assert sheets.appended == []

    monkeypatch.setattr(google_sheets, "GOOGLE_SALES_SPREADSHEET_ID", "sales-sheet")
    assert asyncio.run(google_sheets.append_sale_to_spreadsheet(sale, sheets)) is True
    assert sheets.titles == ["2026-04", "2026-05"]
    assert sheets.headers == [("'2026-05'!A1:J1", [google_sheets.SALES_HEADERS])]
    [(spreadsheet_id, range_, rows)] = sheets.appended
    assert (spreadsheet_id, range_) == ("sales-sheet", "'2026-05'!A:J")
    assert rows[0][0] == 9
    assert rows[0][8] == "CONFIRMED"

    # second sale of the month reuses the sheet
    assert asyncio.run(google_sheets.append_sale_to_spreadsheet({**sale, "id": 10}, sheets)) is True
    assert sheets.titles == ["2026-04", "2026-05"]
    assert len(sheets.headers) == 1


def test_monthly_sheet_name_falls_back_to_now():
    assert google_sheets.monthly_sheet_name("2026-12-31") == "2026-12"
    assert google_sheets.monthly_sheet_name(None, now=NOW) == "2026-05"
    assert google_sheets.monthly_sheet_name("not a date", now=NOW) == "2026-05"
