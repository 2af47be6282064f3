"""Image model."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sitelog.app.db.base import Base

if TYPE_CHECKING:
    from sitelog.app.models.report import Report


class Image(Base):
    """
    Image model representing one site photo attached to a report.

    Attributes:
        id: Unique image identifier (UUID)
        report_id: Owning report
        file_path: Canonical storage key
        file_name: Stored file name
        mime_type: Content type of the stored bytes
        ai_description: Caption written by the analysis step
        image_order: 0-based display order, unique per report
        uploaded_at: Upload timestamp
    """

    __tablename__ = "images"
    __table_args__ = (
        UniqueConstraint('report_id', 'image_order', name='uix_image_report_order'),
    )

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
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False, default="image/jpeg")
    ai_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_order: Mapped[int] = mapped_column(Integer, nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    # Relationships
    report: Mapped["Report"] = relationship("Report", back_populates="images")

    def __repr__(self) -> str:
        return f"<Image(id={self.id}, report_id={self.report_id}, order={self.image_order})>"
