"""Report model for daily site report submissions."""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from sqlalchemy import String, Date, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sitelog.app.db.base import Base

if TYPE_CHECKING:
    from sitelog.app.models.client import Client
    from sitelog.app.models.image import Image
    from sitelog.app.models.worker import Worker


class ReportStatus(str, Enum):
    """Report pipeline status."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Report(Base):
    """
    Report model representing one daily submission and its derived artifacts.

    ``pdf_path`` is set exactly when ``status`` is ``completed``.
    """

    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        index=True,
    )
    client_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("clients.id"),
        nullable=False,
        index=True,
    )
    report_date: Mapped[date] = mapped_column(Date, nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    form_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    ai_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    pdf_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReportStatus.PROCESSING.value,
        index=True,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    client: Mapped["Client"] = relationship("Client", back_populates="reports")
    images: Mapped[list["Image"]] = relationship(
        "Image",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="Image.image_order",
        lazy="selectin",
    )
    workers: Mapped[list["Worker"]] = relationship(
        "Worker",
        back_populates="report",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def mark_processing(self) -> None:
        """Reset for a new pipeline run."""
        self.status = ReportStatus.PROCESSING.value
        self.pdf_path = None
        self.processed_at = None

    def mark_completed(self, pdf_path: str) -> None:
        self.pdf_path = pdf_path
        self.status = ReportStatus.COMPLETED.value
        self.processed_at = datetime.utcnow()

    def mark_failed(self) -> None:
        self.pdf_path = None
        self.status = ReportStatus.FAILED.value
        self.processed_at = datetime.utcnow()

    def __repr__(self) -> str:
        return f"<Report(id={self.id}, project_name={self.project_name}, status={self.status})>"
