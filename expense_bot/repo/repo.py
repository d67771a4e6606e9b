from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_bot.db.models import User

# users
async def ensure_user(session: AsyncSession, user_id: int, username: Optional[str], chat_id: Optional[int]) -> None:
    u = (await session.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if u is None:
        session.add(User(id=user_id, username=username, chat_id=chat_id))
    else:
        u.username = username or u.username
        u.chat_id = chat_id or u.chat_id
        u.last_seen = datetime.now(timezone.utc)
    await session.commit()

async def list_report_chat_ids(session: AsyncSession) -> List[int]:
    rows = (await session.execute(
        select(User.chat_id).where(User.chat_id.is_not(None)).order_by(User.id)
    )).scalars().all()
    return list(rows)
