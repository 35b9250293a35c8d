"""Read-only SQLAlchemy models for the platform tables."""

from formdesk_stats.core.database import Base
from formdesk_stats.models.chat import ChatMessage, MessageRole
from formdesk_stats.models.document import Document, DocumentChunk
from formdesk_stats.models.submission import Submission
from formdesk_stats.models.template import Question, Template, TemplateQuestion
from formdesk_stats.models.user import User, UserStatus

__all__ = [
    "Base",
    "ChatMessage",
    "MessageRole",
    "Document",
    "DocumentChunk",
    "Submission",
    "Question",
    "Template",
    "TemplateQuestion",
    "User",
    "UserStatus",
]
