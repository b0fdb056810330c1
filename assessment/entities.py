# assessment/entities.py
from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

Base = declarative_base()


def utcnow() -> datetime:
    # naive UTC: SQLite drops tzinfo, so every stored timestamp is naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AssessmentResult(Base):
    """
    Write-once StoredResult row. `payload` holds the full StoredResult JSON.
    """

    __tablename__ = "assessment_result"

    id: Mapped[str] = mapped_column(String(8), primary_key=True)
    payload: Mapped[dict[str, object]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    __table_args__ = (
        Index("ix_assessment_result_expires_at", "expires_at"),
    )


class ErrorLogEntry(Base):
    __tablename__ = "error_log"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str | None] = mapped_column(String(64))
    company_name: Mapped[str | None] = mapped_column(String(50))
    payload: Mapped[dict[str, object]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
