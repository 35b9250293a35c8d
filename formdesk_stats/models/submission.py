"""Form submission SQLAlchemy model."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from formdesk_stats.core.database import Base
from formdesk_stats.models.template import Template


class Submission(Base):
    """A filled-in form, submitted by a user against a template."""

    __tablename__ = "form_submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    submitted_by: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    template_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("templates.id"),
        nullable=False,
        index=True,
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        comment="Timestamp when the form was submitted",
    )

    template: Mapped[Template] = relationship()

    __table_args__ = (
        Index("ix_form_submissions_submitted_at", "submitted_at"),
    )

    def __repr__(self) -> str:
        return f"<Submission {self.id} by={self.submitted_by} at={self.submitted_at}>"
