from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from healthcheck.clock import utc_now


class Base(DeclarativeBase):
    pass


class HealthCheckRun(Base):
    __tablename__ = "health_check_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_key: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    trigger_source: Mapped[str] = mapped_column(String(32), default="manual")
    status: Mapped[str] = mapped_column(String(32), default="queued")
    output_dir: Mapped[str] = mapped_column(Text, default="")
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    sections_ok: Mapped[int] = mapped_column(Integer, default=0)
    sections_skipped: Mapped[int] = mapped_column(Integer, default=0)
    sections_failed: Mapped[int] = mapped_column(Integer, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    sections: Mapped[list["SectionRun"]] = relationship(back_populates="run", cascade="all, delete-orphan")
    skipped_records: Mapped[list["SkippedRecordEntry"]] = relationship(
        back_populates="run", cascade="all, delete-orphan"
    )


class SectionRun(Base):
    __tablename__ = "section_runs"
    __table_args__ = (UniqueConstraint("run_id", "kind", "name", name="uq_run_section"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("health_check_runs.id", ondelete="CASCADE"), index=True)
    kind: Mapped[str] = mapped_column(String(16), default="section")
    name: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[str] = mapped_column(String(32), default="started")
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    row_count: Mapped[int] = mapped_column(Integer, default=0)
    skipped_records: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    duration_ms: Mapped[float | None] = mapped_column(Float, nullable=True)

    run: Mapped[HealthCheckRun] = relationship(back_populates="sections")


class SkippedRecordEntry(Base):
    __tablename__ = "skipped_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("health_check_runs.id", ondelete="CASCADE"), index=True)
    section: Mapped[str] = mapped_column(String(64))
    record_index: Mapped[int] = mapped_column(Integer)
    raw_record: Mapped[str] = mapped_column(Text)
    reason: Mapped[str] = mapped_column(Text)

    run: Mapped[HealthCheckRun] = relationship(back_populates="skipped_records")
