"""
ARQ Background Worker
Message dispatch, Google Drive backups and nightly deactivation of terminated partners' landing pages
"""

import logging
import os
from urllib.parse import urlparse

from arq.connections import RedisSettings
from arq.cron import cron
from sqlalchemy import select

# Register every model before any session work
from . import models  # noqa: F401
from . import models_mall  # noqa: F401
from . import models_messaging  # noqa: F401
from . import models_passport  # noqa: F401
from .config import GOOGLE_BACKUP_SPREADSHEET_IDS
from .database import SessionLocal
from .models import AffiliateProfile, LandingPage
from .services import google_auth
from .services.backup import run_database_backup, run_spreadsheet_backup
from .services.funnel_sender import process_funnel_messages
from .services.google_drive import GoogleDriveClient
from .services.google_sheets import GoogleSheetsClient
from .services.scheduled_message_sender import process_scheduled_messages

logger = logging.getLogger(__name__)

EVERY_FIVE_MINUTES = set(range(0, 60, 5))


def get_redis_settings() -> RedisSettings:
    """Redis settings from REDIS_URL or REDIS_HOST/PORT/PASSWORD/SSL"""
    redis_url = os.getenv("REDIS_URL")

    if redis_url:
        parsed = urlparse(redis_url)
        return RedisSettings(
            host=parsed.hostname or "localhost",
            port=parsed.port or 6379,
            password=parsed.password,
            ssl=parsed.scheme == "rediss",
            conn_timeout=15,
            conn_retry_delay=1,
        )
    return RedisSettings(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", "6379")),
        password=os.getenv("REDIS_PASSWORD"),
        ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
        conn_timeout=15,
        conn_retry_delay=1,
    )


async def scheduled_messages_task(ctx):
    db = SessionLocal()
    try:
        return await process_scheduled_messages(db)
    except Exception as e:
        logger.error(f"❌ Scheduled message run failed: {e}")
        raise
    finally:
        db.close()


async def funnel_messages_task(ctx):
    db = SessionLocal()
    try:
        return await process_funnel_messages(db)
    except Exception as e:
        logger.error(f"❌ Funnel message run failed: {e}")
        raise
    finally:
        db.close()


async def database_backup_task(ctx):
    if not google_auth.is_configured():
        logger.warning("⚠️ Google service account not configured, skipping database backup")
        return {"skipped": True}

    db = SessionLocal()
    try:
        return await run_database_backup(db, GoogleDriveClient())
    finally:
        db.close()


async def spreadsheet_backup_task(ctx):
    if not google_auth.is_configured() or not GOOGLE_BACKUP_SPREADSHEET_IDS:
        logger.info("ℹ️ No spreadsheet backup configured")
        return {"skipped": True}

    drive = GoogleDriveClient()
    return await run_spreadsheet_backup(drive, GoogleSheetsClient(drive.credentials), GOOGLE_BACKUP_SPREADSHEET_IDS)


def deactivate_terminated_partner_pages(db) -> int:
    """Deactivate landing pages owned by terminated partners"""
    terminated = select(AffiliateProfile.id).where(AffiliateProfile.status == "TERMINATED")
    count = (
        db.query(LandingPage)
        .filter(LandingPage.profile_id.in_(terminated), LandingPage.is_active.is_(True))
        .update({"is_active": False}, synchronize_session=False)
    )
    db.commit()
    return count


async def deactivate_terminated_partner_pages_task(ctx):
    db = SessionLocal()
    try:
        count = deactivate_terminated_partner_pages(db)
        logger.info(f"🗑️ Deactivated {count} landing page(s) of terminated partners")
        return {"deactivated": count}
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Terminated partner page cleanup failed: {e}")
        raise
    finally:
        db.close()


class WorkerSettings:
    """ARQ worker settings"""

    functions = [
        scheduled_messages_task,
        funnel_messages_task,
        database_backup_task,
        spreadsheet_backup_task,
        deactivate_terminated_partner_pages_task,
    ]

    redis_settings = get_redis_settings()

    max_jobs = 10
    job_timeout = 900
    keep_result = 3600

    cron_jobs = [
        cron(scheduled_messages_task, minute=EVERY_FIVE_MINUTES, run_at_startup=False),
        cron(funnel_messages_task, minute=EVERY_FIVE_MINUTES, run_at_startup=False),
        cron(database_backup_task, hour=3, minute=0),
        cron(spreadsheet_backup_task, hour=0, minute=0),
        cron(deactivate_terminated_partner_pages_task, hour=4, minute=0),
    ]
