"""Pydantic schemas for the activity dashboard responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys for the dashboard client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRollup(CamelModel):
    """Activity counters for a single user."""

    user_id: str
    email: str
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    display_name: str = Field(description="Name, else first/last name, else email")
    role: str
    status: str
    email_verified: bool = False
    created_at: datetime

    total_submissions: int = Field(default=0, description="All submissions, lifetime")
    last_submission: datetime | None = Field(default=None, description="Most recent submission")
    submissions_last_30: int = Field(default=0, description="Submissions in the rolling window")
    total_documents: int = 0
    processed_documents: int = 0
    total_chunks: int = Field(default=0, description="Chunks of the user's documents")
    total_chat_messages: int = 0
    total_user_messages: int = Field(default=0, description="Chat messages authored by the user")
    total_conversations: int = Field(default=0, description="Distinct conversation ids")
    active_days_last_30: int = Field(
        default=0,
        description="Distinct days with a submission or chat message in the window",
    )
    submissions_by_day: dict[str, int] = Field(
        default_factory=dict,
        description="ISO date -> submissions in the window (days with activity only)",
    )
    template_distribution: dict[str, int] = Field(
        default_factory=dict,
        description="Template id -> lifetime submissions",
    )


class GlobalStats(CamelModel):
    """Platform-wide scalar metrics."""

    total_users: int = 0
    pending_users: int = 0
    approved_users: int = 0
    rejected_users: int = 0
    active_users_last_30: int = 0
    inactive_users: int = 0

    total_submissions: int = 0
    submissions_last_30: int = 0
    submissions_last_7: int = 0
    submissions_today: int = 0
    avg_submissions_per_user: int = 0

    total_templates: int = 0
    total_questions: int = 0

    total_documents: int = 0
    processed_documents: int = 0
    documents_last_30: int = 0
    documents_last_7: int = 0
    total_chunks: int = 0
    avg_documents_per_user: int = 0

    total_chat_messages: int = 0
    user_messages: int = 0
    assistant_messages: int = 0
    unique_conversations: int = 0
    chat_messages_last_30: int = 0
    chat_messages_last_7: int = 0
    avg_chat_messages_per_user: int = 0

    avg_active_days: int = 0


class DayBucketedSeries(CamelModel):
    """Dense per-day counts covering every day of the rolling window."""

    submissions_by_day: dict[str, int]
    documents_by_day: dict[str, int]
    chat_messages_by_day: dict[str, int]
    user_messages_by_day: dict[str, int]


class DateRange(BaseModel):
    """Rolling window the snapshot covers."""

    model_config = ConfigDict(populate_by_name=True)

    from_date: datetime = Field(alias="from")
    to_date: datetime = Field(alias="to")


class TemplateStat(CamelModel):
    """Submissions received by one template in the rolling window."""

    template_id: str
    template_name: str
    submission_count: int


class StatsReport(CamelModel):
    """Complete activity snapshot for the admin dashboard."""

    users: list[UserRollup]
    stats: GlobalStats
    trends: DayBucketedSeries
    template_stats: list[TemplateStat] = Field(
        default_factory=list,
        description="Templates by submissions in the window, busiest first",
    )
    date_range: DateRange
    template_id: str | None = Field(
        default=None,
        description="Template filter applied to every submission-derived figure",
    )


class TrendingQuestion(CamelModel):
    """A question ranked by how many recent submissions referenced it."""

    question_id: str
    title: str
    count: int
