import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..config import GOOGLE_BACKUP_SPREADSHEET_IDS
from ..database import get_db
from ..models import User
from ..models_mall import BackupLog
from ..services import google_auth
from ..services.backup import run_database_backup, run_spreadsheet_backup
from ..services.google_drive import GoogleDriveClient
from ..services.google_sheets import GoogleSheetsClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/backup", tags=["Backup"])


def get_drive_client() -> GoogleDriveClient:
    if not google_auth.is_configured():
        raise HTTPException(status_code=503, detail="Google service account is not configured")
    return GoogleDriveClient()


@router.post("/database")
async def backup_database(
    admin: User = Depends(require_admin),
    drive: GoogleDriveClient = Depends(get_drive_client),
    db: Session = Depends(get_db),
):
    logger.info(f"🗄️ Manual database backup requested by admin {admin.id}")
    return {"ok": True, **await run_database_backup(db, drive)}


@router.post("/spreadsheets")
async def backup_spreadsheets(
    admin: User = Depends(require_admin),
    drive: GoogleDriveClient = Depends(get_drive_client),
):
    if not GOOGLE_BACKUP_SPREADSHEET_IDS:
        raise HTTPException(status_code=400, detail="No spreadsheets configured for backup")
    logger.info(f"📋 Manual spreadsheet backup requested by admin {admin.id}")
    return {"ok": True, **await run_spreadsheet_backup(drive, GoogleSheetsClient(drive.credentials), GOOGLE_BACKUP_SPREADSHEET_IDS)}


@router.get("/logs")
async def list_backup_logs(_admin: User = Depends(require_admin), db: Session = Depends(get_db)):
    logs = db.query(BackupLog).order_by(BackupLog.created_at.desc(), BackupLog.id.desc()).limit(30).all()
    return {
        "ok": True,
        "logs": [
            {
                "id": log.id,
                "backup_type": log.backup_type,
                "total_tables": log.total_tables,
                "success_count": log.success_count,
                "failure_count": log.failure_count,
                "duration_seconds": log.duration_seconds,
                "error_message": log.error_message,
                "created_at": log.created_at,
            }
            for log in logs
        ],
    }
