"""Worker model."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import String, Float, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sitelog.app.db.base import Base

if TYPE_CHECKING:
    from sitelog.app.models.report import Report


class Worker(Base):
    """Labourer recorded against a report."""

    __tablename__ = "workers"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        index=True,
    )
    report_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("reports.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    worker_name: Mapped[str] = mapped_column(String(255), nullable=False)
    hours_worked: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    # Relationships
    report: Mapped["Report"] = relationship("Report", back_populates="workers")

    def __repr__(self) -> str:
        return f"<Worker(name={self.worker_name}, hours={self.hours_worked})>"
