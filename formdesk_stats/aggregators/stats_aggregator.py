"""Statistics aggregation service for the admin activity dashboard."""

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import TypeVar

import structlog

from formdesk_stats.core.config import get_settings
from formdesk_stats.core.observability import record_stats_failure, record_stats_run
from formdesk_stats.models import (
    ChatMessage,
    Document,
    MessageRole,
    Question,
    Submission,
    Template,
    User,
    UserStatus,
)
from formdesk_stats.schemas import (
    DateRange,
    DayBucketedSeries,
    GlobalStats,
    StatsReport,
    TemplateStat,
    TrendingQuestion,
    UserRollup,
)
from formdesk_stats.services.record_store import RecordStore, get_record_store

logger = structlog.get_logger()

T = TypeVar("T")


def utc_naive(value: datetime) -> datetime:
    """Convert a datetime to naive UTC; naive input is assumed to be UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utc_now() -> datetime:
    """Current instant as naive UTC, matching the platform's stored timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def day_key(value: datetime) -> str:
    """ISO calendar date (UTC) of a timestamp."""
    return utc_naive(value).date().isoformat()


def records_between(
    records: Iterable[T],
    timestamp: Callable[[T], datetime],
    start: datetime,
    end: datetime,
) -> list[T]:
    """Keep the records whose timestamp falls in ``[start, end]``."""
    return [record for record in records if start <= utc_naive(timestamp(record)) <= end]


def bucket_by_day(
    records: Iterable[T],
    timestamp: Callable[[T], datetime],
    start: datetime,
    end: datetime,
) -> dict[str, int]:
    """Count records per calendar day over ``[start, end]``.

    Every day of the range is present, zero-filled. Records falling on a day
    outside the range are ignored.
    """
    series: dict[str, int] = {}
    day = start.date()
    last_day = end.date()
    while day <= last_day:
        series[day.isoformat()] = 0
        day += timedelta(days=1)

    for record in records:
        key = day_key(timestamp(record))
        if key in series:
            series[key] += 1

    return series


def average(total: int, count: int) -> int:
    """Integer average rounded half up; 0 when there is nothing to divide by."""
    if count <= 0:
        return 0
    return (2 * total + count) // (2 * count)


def display_name(user: User) -> str:
    """Best human-readable label for a user."""
    if user.name:
        return user.name
    full_name = " ".join(part for part in (user.first_name, user.last_name) if part)
    return full_name or user.email


def new_rollup(user: User) -> UserRollup:
    """Create an all-zero rollup for a user."""
    return UserRollup(
        user_id=user.id,
        email=user.email,
        name=user.name,
        first_name=user.first_name,
        last_name=user.last_name,
        display_name=display_name(user),
        role=user.role,
        status=user.status,
        email_verified=bool(user.email_verified),
        created_at=user.created_at,
    )


def _submitted_at(submission: Submission) -> datetime:
    return submission.submitted_at


def _uploaded_at(document: Document) -> datetime:
    return document.uploaded_at


def _sent_at(message: ChatMessage) -> datetime:
    return message.created_at


def build_stats_report(
    *,
    now: datetime,
    window_days: int,
    week_days: int,
    submissions: Sequence[Submission],
    documents: Sequence[Document],
    chat_messages: Sequence[ChatMessage],
    users: Sequence[User],
    templates: Sequence[Template],
    questions: Sequence[Question],
    total_chunks: int,
    chunks_by_user: Mapping[str, int] | None = None,
    template_id: str | None = None,
) -> StatsReport:
    """Aggregate already-fetched rows into a dashboard snapshot.

    Pure function of its arguments: ``now`` (naive UTC) anchors every
    rolling window and nothing is read from or written to shared state.
    Lifetime and in-window submission counts are separate counters. Rolling
    windows end at ``now``; lifetime figures cover every row passed in.
    """
    chunks_by_user = chunks_by_user or {}
    window_start = now - timedelta(days=window_days)
    week_start = now - timedelta(days=week_days)
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    submissions_last_30 = records_between(submissions, _submitted_at, window_start, now)
    submissions_last_7 = records_between(submissions, _submitted_at, week_start, now)
    submissions_today = records_between(submissions, _submitted_at, today_start, now)
    documents_last_30 = records_between(documents, _uploaded_at, window_start, now)
    documents_last_7 = records_between(documents, _uploaded_at, week_start, now)
    messages_last_30 = records_between(chat_messages, _sent_at, window_start, now)
    messages_last_7 = records_between(chat_messages, _sent_at, week_start, now)

    trends = DayBucketedSeries(
        submissions_by_day=bucket_by_day(submissions_last_30, _submitted_at, window_start, now),
        documents_by_day=bucket_by_day(documents_last_30, _uploaded_at, window_start, now),
        chat_messages_by_day=bucket_by_day(messages_last_30, _sent_at, window_start, now),
        user_messages_by_day=bucket_by_day(
            [m for m in messages_last_30 if m.role == MessageRole.USER],
            _sent_at,
            window_start,
            now,
        ),
    )

    rollups: dict[str, UserRollup] = {user.id: new_rollup(user) for user in users}
    conversations: dict[str, set[str]] = {user_id: set() for user_id in rollups}
    active_days: dict[str, set[str]] = {user_id: set() for user_id in rollups}

    for submission in submissions_last_30:
        rollup = rollups.get(submission.submitted_by)
        if rollup is None:
            continue
        key = day_key(submission.submitted_at)
        rollup.submissions_last_30 += 1
        rollup.submissions_by_day[key] = rollup.submissions_by_day.get(key, 0) + 1
        active_days[rollup.user_id].add(key)

    for submission in submissions:
        rollup = rollups.get(submission.submitted_by)
        if rollup is None:
            continue
        rollup.total_submissions += 1
        submitted_at = utc_naive(submission.submitted_at)
        if rollup.last_submission is None or submitted_at > rollup.last_submission:
            rollup.last_submission = submitted_at
        distribution = rollup.template_distribution
        distribution[submission.template_id] = distribution.get(submission.template_id, 0) + 1

    for document in documents:
        rollup = rollups.get(document.uploaded_by)
        if rollup is None:
            continue
        rollup.total_documents += 1
        if document.processed_at is not None:
            rollup.processed_documents += 1

    for message in chat_messages:
        rollup = rollups.get(message.user_id)
        if rollup is None:
            continue
        rollup.total_chat_messages += 1
        if message.role == MessageRole.USER:
            rollup.total_user_messages += 1
        conversations[rollup.user_id].add(message.conversation_id)

    for message in messages_last_30:
        if message.user_id in active_days:
            active_days[message.user_id].add(day_key(message.created_at))

    for user_id, rollup in rollups.items():
        rollup.total_conversations = len(conversations[user_id])
        rollup.active_days_last_30 = len(active_days[user_id])
        rollup.total_chunks = chunks_by_user.get(user_id, 0)
        rollup.submissions_by_day = dict(sorted(rollup.submissions_by_day.items()))

    user_rollups = list(rollups.values())
    total_users = len(users)
    active_users = sum(1 for rollup in user_rollups if rollup.active_days_last_30 > 0)
    user_messages = sum(1 for m in chat_messages if m.role == MessageRole.USER)

    stats = GlobalStats(
        total_users=total_users,
        pending_users=sum(1 for u in users if u.status == UserStatus.PENDING),
        approved_users=sum(1 for u in users if u.status == UserStatus.APPROVED),
        rejected_users=sum(1 for u in users if u.status == UserStatus.REJECTED),
        active_users_last_30=active_users,
        inactive_users=total_users - active_users,
        total_submissions=len(submissions),
        submissions_last_30=len(submissions_last_30),
        submissions_last_7=len(submissions_last_7),
        submissions_today=len(submissions_today),
        avg_submissions_per_user=average(len(submissions), total_users),
        total_templates=len(templates),
        total_questions=len(questions),
        total_documents=len(documents),
        processed_documents=sum(1 for d in documents if d.processed_at is not None),
        documents_last_30=len(documents_last_30),
        documents_last_7=len(documents_last_7),
        total_chunks=total_chunks,
        avg_documents_per_user=average(len(documents), total_users),
        total_chat_messages=len(chat_messages),
        user_messages=user_messages,
        assistant_messages=sum(1 for m in chat_messages if m.role == MessageRole.ASSISTANT),
        unique_conversations=len({m.conversation_id for m in chat_messages}),
        chat_messages_last_30=len(messages_last_30),
        chat_messages_last_7=len(messages_last_7),
        avg_chat_messages_per_user=average(len(chat_messages), total_users),
        avg_active_days=average(
            sum(rollup.active_days_last_30 for rollup in user_rollups),
            total_users,
        ),
    )

    return StatsReport(
        users=user_rollups,
        stats=stats,
        trends=trends,
        template_stats=rank_templates(submissions_last_30, templates),
        date_range=DateRange(from_date=window_start, to_date=now),
        template_id=template_id,
    )


def rank_templates(
    submissions: Iterable[Submission],
    templates: Iterable[Template],
) -> list[TemplateStat]:
    """Count submissions per template, busiest first.

    Only templates with at least one submission are listed. A template missing
    from ``templates`` is reported under its id.
    """
    titles = {template.id: template.title for template in templates}
    tally: dict[str, TemplateStat] = {}

    for submission in submissions:
        entry = tally.get(submission.template_id)
        if entry is None:
            entry = TemplateStat(
                template_id=submission.template_id,
                template_name=titles.get(submission.template_id, submission.template_id),
                submission_count=0,
            )
            tally[submission.template_id] = entry
        entry.submission_count += 1

    return sorted(tally.values(), key=lambda t: t.submission_count, reverse=True)


def rank_trending_questions(
    submissions: Iterable[Submission],
    limit: int,
) -> list[TrendingQuestion]:
    """Rank questions by the number of submissions whose template includes them.

    A submission references every question attached to its template, answered
    or not. Ties keep the order in which questions were first encountered.
    """
    tally: dict[str, TrendingQuestion] = {}

    for submission in submissions:
        template = submission.template
        if template is None:
            continue
        for link in template.questions:
            question = link.question
            entry = tally.get(question.id)
            if entry is None:
                entry = TrendingQuestion(question_id=question.id, title=question.title, count=0)
                tally[question.id] = entry
            entry.count += 1

    ranked = sorted(tally.values(), key=lambda q: q.count, reverse=True)
    return ranked[:limit]


class StatsAggregator:
    """Service producing activity snapshots for the admin dashboard.

    Loads whole entity collections through a ``RecordStore`` and aggregates
    them in memory. Each call builds its result from scratch; the aggregator
    keeps no state between calls beyond its configuration.

    Usage:
        aggregator = StatsAggregator()
        report = await aggregator.generate_stats()
        trending = await aggregator.get_trending(days=7)
    """

    def __init__(
        self,
        store: RecordStore | None = None,
        window_days: int | None = None,
        week_days: int | None = None,
        trending_limit: int | None = None,
    ):
        """Initialize the aggregator.

        Args:
            store: Source of platform rows. Defaults to the global store.
            window_days: Length of the main rolling window (default from settings).
            week_days: Length of the short rolling window (default from settings).
            trending_limit: Maximum trending questions returned (default from settings).
        """
        settings = get_settings()
        self._store = store or get_record_store()
        self._window_days = window_days if window_days is not None else settings.stats_window_days
        self._week_days = week_days if week_days is not None else settings.stats_week_days
        self._trending_limit = (
            trending_limit if trending_limit is not None else settings.trending_limit
        )

    async def generate_stats(
        self,
        reference_time: datetime | None = None,
        template_id: str | None = None,
    ) -> StatsReport:
        """Build a complete dashboard snapshot.

        Args:
            reference_time: The "now" anchoring all rolling windows. Defaults
                to the current UTC time.
            template_id: Restrict every submission-derived figure to this template.

        Raises:
            Whatever the store raises; no partial snapshot is produced.
        """
        start_time_metric = time.perf_counter()
        now = utc_naive(reference_time) if reference_time is not None else utc_now()

        logger.debug(
            "Generating stats",
            template_id=template_id,
            reference_time=now.isoformat(),
        )

        try:
            (
                submissions,
                documents,
                chat_messages,
                users,
                templates,
                questions,
                total_chunks,
                chunks_by_user,
            ) = await asyncio.gather(
                self._store.list_submissions(template_id),
                self._store.list_documents(),
                self._store.list_chat_messages(),
                self._store.list_users(),
                self._store.list_templates(),
                self._store.list_questions(),
                self._store.count_document_chunks(),
                self._store.count_chunks_by_user(),
            )
        except Exception as e:
            record_stats_failure("dashboard")
            logger.error(
                "Stats data fetch failed",
                template_id=template_id,
                reference_time=now.isoformat(),
                error=str(e),
            )
            raise

        report = build_stats_report(
            now=now,
            window_days=self._window_days,
            week_days=self._week_days,
            submissions=submissions,
            documents=documents,
            chat_messages=chat_messages,
            users=users,
            templates=templates,
            questions=questions,
            total_chunks=total_chunks,
            chunks_by_user=chunks_by_user,
            template_id=template_id,
        )

        duration = time.perf_counter() - start_time_metric
        record_stats_run("dashboard", duration)

        logger.info(
            "Stats generated",
            template_id=template_id,
            users=report.stats.total_users,
            submissions=report.stats.total_submissions,
            duration_ms=round(duration * 1000, 2),
        )
        return report

    async def get_trending(
        self,
        days: int | None = None,
        reference_time: datetime | None = None,
    ) -> list[TrendingQuestion]:
        """Get the questions most referenced by recent submissions.

        Args:
            days: Lookback window in days (default from settings).
            reference_time: End of the lookback window. Defaults to now (UTC).
        """
        start_time_metric = time.perf_counter()
        if days is None:
            days = get_settings().trending_days
        now = utc_naive(reference_time) if reference_time is not None else utc_now()
        since = now - timedelta(days=days)

        try:
            submissions = await self._store.list_submissions_since(since, until=now)
        except Exception as e:
            record_stats_failure("trending")
            logger.error("Trending data fetch failed", days=days, error=str(e))
            raise

        trending = rank_trending_questions(submissions, self._trending_limit)

        duration = time.perf_counter() - start_time_metric
        record_stats_run("trending", duration)

        logger.info(
            "Trending questions computed",
            days=days,
            submissions=len(submissions),
            questions=len(trending),
            duration_ms=round(duration * 1000, 2),
        )
        return trending


# Global aggregator instance
_aggregator: StatsAggregator | None = None


def get_aggregator() -> StatsAggregator:
    """Get the global aggregator instance."""
    global _aggregator
    if _aggregator is None:
        _aggregator = StatsAggregator()
    return _aggregator
