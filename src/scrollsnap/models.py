from __future__ import annotations

import pathlib
from datetime import datetime
from typing import List, Optional

from sqlalchemy import DateTime, Integer, String, select
from sqlalchemy import text as sql_text
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from .schemas import CaptureComplete


class Base(AsyncAttrs, DeclarativeBase):
    pass


class CaptureRecord(Base):
    __tablename__ = "captures"

    id: Mapped[int] = mapped_column(primary_key=True)
    session_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    path: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    stitch_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stop_reason: Mapped[str] = mapped_column(String(32), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<CaptureRecord(id={self.id}, session={self.session_id}, "
            f"{self.width}x{self.height})>"
        )


async def init_db(
    db_path: str = "scrollsnap.db",
    db_directory: Optional[str] = None,
):
    """Create the SQLite file and ORM tables (first run only)."""
    if db_directory:
        path = pathlib.Path(db_directory).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        db_path = str(path / db_path)

    engine: AsyncEngine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        future=True,
        connect_args={
            "timeout": 30,
            "isolation_level": None,
        },
    )

    async with engine.begin() as conn:
        await conn.execute(sql_text("PRAGMA journal_mode=WAL"))
        await conn.execute(sql_text("PRAGMA busy_timeout=30000"))

        await conn.run_sync(Base.metadata.create_all)

    Session = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    return engine, Session


async def record_capture(
    Session, event: CaptureComplete, path: Optional[str] = None
) -> CaptureRecord:
    record = CaptureRecord(
        session_id=event.session_id,
        path=path,
        width=event.width,
        height=event.height,
        stitch_count=event.stitch_count,
        stop_reason=event.reason.value,
    )
    async with Session() as session:
        async with session.begin():
            session.add(record)
    return record


async def recent_captures(Session, limit: int = 10) -> List[CaptureRecord]:
    async with Session() as session:
        result = await session.execute(
            select(CaptureRecord).order_by(CaptureRecord.id.desc()).limit(limit)
        )
        return list(result.scalars())
