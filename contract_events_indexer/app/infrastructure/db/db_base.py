from __future__ import annotations

from sqlalchemy import JSON, BigInteger, Integer, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase

# PostgreSQL is the production store; the SQLite variants keep the same
# models usable with sqlite+aiosqlite.
PK_BIGINT = BigInteger().with_variant(Integer(), "sqlite")
JSON_DOCUMENT = JSON().with_variant(JSONB(), "postgresql")
TEXT_ARRAY = JSON().with_variant(ARRAY(Text()), "postgresql")


class BaseDB(DeclarativeBase):
    pass
