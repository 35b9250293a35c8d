"""Read-only access to the platform tables the stats aggregator consumes."""

from collections.abc import Sequence
from datetime import datetime

import structlog
from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from formdesk_stats.core.database import async_session_factory
from formdesk_stats.core.observability import record_rows_loaded
from formdesk_stats.models import (
    ChatMessage,
    Document,
    DocumentChunk,
    Question,
    Submission,
    Template,
    TemplateQuestion,
    User,
)

logger = structlog.get_logger()


class RecordStore:
    """Loads whole entity collections for in-memory aggregation.

    Every method opens its own session so that callers can run several
    reads concurrently with ``asyncio.gather``. No filtering or pagination
    is applied beyond what each method documents.

    Usage:
        store = RecordStore()
        users, documents = await asyncio.gather(
            store.list_users(),
            store.list_documents(),
        )
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        """Initialize the store.

        Args:
            session_factory: Factory for database sessions. Defaults to the
                application's shared factory.
        """
        self._session_factory = session_factory or async_session_factory

    async def _fetch_all(self, collection: str, query: Select) -> list:
        async with self._session_factory() as session:
            result = await session.execute(query)
            rows = list(result.scalars().all())

        record_rows_loaded(collection, len(rows))
        logger.debug("Collection loaded", collection=collection, rows=len(rows))
        return rows

    async def list_submissions(self, template_id: str | None = None) -> list[Submission]:
        """Get all form submissions, oldest first, optionally narrowed to one template."""
        query = select(Submission).order_by(Submission.submitted_at, Submission.id)
        if template_id:
            query = query.where(Submission.template_id == template_id)
        return await self._fetch_all("submissions", query)

    async def list_documents(self) -> list[Document]:
        """Get all uploaded documents."""
        return await self._fetch_all("documents", select(Document))

    async def list_chat_messages(self) -> list[ChatMessage]:
        """Get all assistant chat messages."""
        return await self._fetch_all("chat_messages", select(ChatMessage))

    async def list_users(self) -> list[User]:
        """Get all users, oldest account first."""
        return await self._fetch_all(
            "users",
            select(User).order_by(User.created_at, User.id),
        )

    async def list_templates(self) -> list[Template]:
        """Get all templates."""
        return await self._fetch_all("templates", select(Template))

    async def list_questions(self) -> list[Question]:
        """Get all questions."""
        return await self._fetch_all("questions", select(Question))

    async def count_document_chunks(self) -> int:
        """Count document chunks without loading them."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(DocumentChunk)
            )
            return result.scalar() or 0

    async def count_chunks_by_user(self) -> dict[str, int]:
        """Count document chunks per uploading user."""
        query = (
            select(Document.uploaded_by, func.count(DocumentChunk.id))
            .select_from(DocumentChunk)
            .join(Document, DocumentChunk.document_id == Document.id)
            .group_by(Document.uploaded_by)
        )
        async with self._session_factory() as session:
            result = await session.execute(query)
            return {user_id: count for user_id, count in result.all()}

    async def list_submissions_since(
        self,
        since: datetime,
        until: datetime | None = None,
    ) -> Sequence[Submission]:
        """Get submissions made at or after ``since`` and, if given, at or before ``until``.

        Each submission has its template and the template's question
        associations (with the questions themselves) loaded eagerly.
        """
        query = (
            select(Submission)
            .where(Submission.submitted_at >= since)
            .order_by(Submission.submitted_at, Submission.id)
            .options(
                selectinload(Submission.template)
                .selectinload(Template.questions)
                .selectinload(TemplateQuestion.question)
            )
        )
        if until is not None:
            query = query.where(Submission.submitted_at <= until)
        return await self._fetch_all("trending_submissions", query)


# Global store instance
_record_store: RecordStore | None = None


def get_record_store() -> RecordStore:
    """Get the global record store instance."""
    global _record_store
    if _record_store is None:
        _record_store = RecordStore()
    return _record_store
