"""Template and question SQLAlchemy models."""

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from formdesk_stats.core.database import Base


class Question(Base):
    """A question that can be attached to one or more templates."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<Question {self.id}>"


class Template(Base):
    """A form template made of ordered questions."""

    __tablename__ = "templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    questions: Mapped[list["TemplateQuestion"]] = relationship(
        back_populates="template",
        order_by="TemplateQuestion.position",
    )

    def __repr__(self) -> str:
        return f"<Template {self.title}>"


class TemplateQuestion(Base):
    """Association between a template and one of its questions."""

    __tablename__ = "template_questions"

    template_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("templates.id"),
        primary_key=True,
    )
    question_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("questions.id"),
        primary_key=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    template: Mapped[Template] = relationship(back_populates="questions")
    question: Mapped[Question] = relationship()

    def __repr__(self) -> str:
        return f"<TemplateQuestion {self.template_id}:{self.question_id}>"
