"""Google Drive (REST v3) client used for backups"""

import json
import logging
import uuid
from typing import Optional

import httpx

from .google_auth import GoogleAuthError, ServiceAccountCredentials

logger = logging.getLogger(__name__)

DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3/files"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GoogleDriveClient:
    def __init__(self, credentials: Optional[ServiceAccountCredentials] = None):
        self.credentials = credentials or ServiceAccountCredentials()

    async def find_or_create_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        headers = await self.credentials.auth_headers()
        query = f"name = '{_escape(name)}' and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        if parent_id:
            query += f" and '{parent_id}' in parents"

        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.get(
                f"{DRIVE_API}/files",
                headers=headers,
                params={
                    "q": query,
                    "fields": "files(id, name)",
                    "supportsAllDrives": "true",
                    "includeItemsFromAllDrives": "true",
                },
            )
            response.raise_for_status()
            files = response.json().get("files", [])
            if files:
                return files[0]["id"]

            metadata = {"name": name, "mimeType": FOLDER_MIME_TYPE}
            if parent_id:
                metadata["parents"] = [parent_id]
            response = await client.post(
                f"{DRIVE_API}/files",
                headers=headers,
                params={"fields": "id", "supportsAllDrives": "true"},
                json=metadata,
            )
            response.raise_for_status()

        folder_id = response.json()["id"]
        logger.info(f"📁 Created Drive folder '{name}' ({folder_id})")
        return folder_id

    async def upload_file(self, folder_id: str, file_name: str, mime_type: str, content: bytes) -> dict:
        """Multipart upload. Returns {ok, file_id, error}."""
        boundary = uuid.uuid4().hex
        metadata = json.dumps({"name": file_name, "parents": [folder_id]})
        body = (
            f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n{metadata}\r\n"
            f"--{boundary}\r\nContent-Type: {mime_type}\r\n\r\n"
        ).encode("utf-8") + content + f"\r\n--{boundary}--".encode("utf-8")

        try:
            headers = await self.credentials.auth_headers()
            headers["Content-Type"] = f"multipart/related; boundary={boundary}"
            async with httpx.AsyncClient(timeout=120.0) as client:
                response = await client.post(
                    DRIVE_UPLOAD_API,
                    headers=headers,
                    params={"uploadType": "multipart", "fields": "id", "supportsAllDrives": "true"},
                    content=body,
                )
            if response.status_code not in (200, 201):
                logger.error(f"❌ Drive upload of {file_name} failed: {response.text}")
                return {"ok": False, "file_id": None, "error": f"HTTP {response.status_code}"}
            return {"ok": True, "file_id": response.json().get("id"), "error": None}
        except (httpx.HTTPError, GoogleAuthError) as e:
            logger.error(f"❌ Drive upload of {file_name} failed: {e}")
            return {"ok": False, "file_id": None, "error": str(e)}
