"""Client model."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import String, Text, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sitelog.app.db.base import Base

if TYPE_CHECKING:
    from sitelog.app.models.report import Report


class Client(Base):
    """
    Client model representing a tenant that submits daily reports.

    The report pipeline reads clients but never mutates them.

    Attributes:
        id: Unique client identifier (UUID)
        company_name: Company name shown in documents and emails
        contact_name: Primary contact
        contact_email: Contact address shown in the PDF footer
        notification_emails: Recipients of finished reports
        logo_path: Storage reference of the client logo (any historical prefix)
        brand_color: Hex brand color used in the PDF and email
        form_slug: Public form identifier
        ai_prompt_template: Optional client-specific analysis prompt
        active: Whether the client accepts new submissions
        created_at: Creation timestamp
    """

    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        index=True,
    )
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    notification_emails: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    logo_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    brand_color: Mapped[str] = mapped_column(String(7), nullable=False, default="#E8764B")
    form_slug: Mapped[str | None] = mapped_column(String(100), nullable=True, unique=True)
    ai_prompt_template: Mapped[str | None] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    # Relationships
    reports: Mapped[list["Report"]] = relationship(
        "Report",
        back_populates="client",
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, company_name={self.company_name}, active={self.active})>"
