from __future__ import annotations

from sqlalchemy import BigInteger
from sqlalchemy.orm import Mapped, mapped_column

from contract_events_indexer.app.infrastructure.db.db_base import PK_BIGINT, BaseDB

CURSOR_ROW_ID = 1


class CursorDB(BaseDB):
    """
    Last fully indexed block (inclusive).

    Single logical row (id = CURSOR_ROW_ID). Readers may treat `count` as a
    consistency watermark: every log up to this block is stored.
    """

    __tablename__ = "cursors"

    id: Mapped[int] = mapped_column(PK_BIGINT, primary_key=True, autoincrement=False)
    count: Mapped[int] = mapped_column(BigInteger, nullable=False)
