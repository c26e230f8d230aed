import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user, get_optional_user
from ..database import get_db
from ..models import ChatHistory, User
from ..services.chat_assistant import answer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])

HISTORY_LIMIT = 50


class ChatRequest(BaseModel):
    text: Optional[str] = None
    mode: Optional[str] = None
    from_: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None


def _message_text(message: dict) -> str:
    if message.get("type") == "text":
        return message["text"]
    if message.get("type") == "map-links":
        return "\n".join(f"{link['label']}: {link['href']}" for link in message["links"])
    if message.get("type") == "products":
        return "\n".join(f"{p['title']} ({p['product_code']})" for p in message["products"])
    return ""


@router.post("")
async def chat(
    data: ChatRequest,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    text = (data.text or "").strip()
    if not text:
        raise HTTPException(status_code=400, detail="text is required")

    messages = await answer(db, text, data.mode, data.from_, data.to)

    if user:
        db.add(ChatHistory(user_id=user.id, role="user", content=text))
        reply = "\n".join(filter(None, (_message_text(m) for m in messages)))
        if reply:
            db.add(ChatHistory(user_id=user.id, role="assistant", content=reply))
        db.commit()

    return {"ok": True, "messages": messages}


@router.get("/history")
async def chat_history(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = (
        db.query(ChatHistory)
        .filter(ChatHistory.user_id == user.id)
        .order_by(ChatHistory.created_at.desc(), ChatHistory.id.desc())
        .limit(HISTORY_LIMIT)
        .all()
    )
    return {
        "ok": True,
        "messages": [
            {"id": r.id, "role": r.role, "content": r.content, "created_at": r.created_at} for r in reversed(rows)
        ],
    }
