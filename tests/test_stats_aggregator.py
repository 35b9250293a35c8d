from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone

from formdesk_stats.aggregators import StatsAggregator, build_stats_report
from formdesk_stats.aggregators.stats_aggregator import average, bucket_by_day
from formdesk_stats.models import Question

from tests.factories import (
    NOW,
    FakeRecordStore,
    days_ago,
    make_document,
    make_message,
    make_submission,
    make_template,
    make_user,
)


def _day(days: int) -> str:
    return (NOW.date() - timedelta(days=days)).isoformat()


class AverageTests(unittest.TestCase):
    def test_rounds_half_up(self):
        self.assertEqual(average(3, 2), 2)
        self.assertEqual(average(5, 2), 3)
        self.assertEqual(average(1, 3), 0)
        self.assertEqual(average(2, 3), 1)

    def test_zero_count_returns_zero(self):
        self.assertEqual(average(10, 0), 0)


class BucketByDayTests(unittest.TestCase):
    def test_dense_range_and_out_of_range_records_ignored(self):
        start = datetime(2026, 3, 1, 18, 30)
        end = datetime(2026, 3, 4, 9, 0)
        records = [
            datetime(2026, 3, 2, 23, 59),
            datetime(2026, 3, 2, 0, 0),
            datetime(2026, 2, 28, 12, 0),
        ]

        series = bucket_by_day(records, lambda ts: ts, start, end)

        self.assertEqual(
            series,
            {"2026-03-01": 0, "2026-03-02": 2, "2026-03-03": 0, "2026-03-04": 0},
        )

    def test_aware_timestamps_bucketed_by_utc_date(self):
        start = datetime(2026, 3, 1)
        end = datetime(2026, 3, 2)
        late_evening_in_new_york = datetime(2026, 3, 1, 21, 0, tzinfo=timezone(timedelta(hours=-5)))

        series = bucket_by_day([late_evening_in_new_york], lambda ts: ts, start, end)

        self.assertEqual(series, {"2026-03-01": 0, "2026-03-02": 1})


class StatsAggregatorTests(unittest.IsolatedAsyncioTestCase):
    async def _generate(self, store: FakeRecordStore, **kwargs):
        aggregator = StatsAggregator(store=store, window_days=30, week_days=7, trending_limit=10)
        return await aggregator.generate_stats(reference_time=NOW, **kwargs)

    async def test_example_scenario(self):
        store = FakeRecordStore(
            users=[make_user("u1"), make_user("u2")],
            submissions=[
                make_submission("s1", "u1", days_ago(1)),
                make_submission("s2", "u1", days_ago(5)),
                make_submission("s3", "u2", days_ago(20)),
            ],
        )

        report = await self._generate(store)
        by_user = {rollup.user_id: rollup for rollup in report.users}

        self.assertEqual(len(report.trends.submissions_by_day), 31)
        self.assertEqual(by_user["u1"].submissions_by_day, {_day(5): 1, _day(1): 1})
        self.assertEqual(by_user["u1"].active_days_last_30, 2)
        self.assertEqual(by_user["u2"].active_days_last_30, 1)
        self.assertEqual(report.stats.submissions_last_30, 3)
        self.assertEqual(report.stats.submissions_last_7, 2)
        self.assertEqual(report.stats.avg_submissions_per_user, 2)
        self.assertEqual(report.trends.submissions_by_day[_day(20)], 1)

    async def test_every_series_is_dense_over_the_window(self):
        report = await self._generate(FakeRecordStore())

        expected_days = [(NOW.date() - timedelta(days=offset)).isoformat() for offset in range(30, -1, -1)]
        for series in (
            report.trends.submissions_by_day,
            report.trends.documents_by_day,
            report.trends.chat_messages_by_day,
            report.trends.user_messages_by_day,
        ):
            self.assertEqual(list(series), expected_days)
            self.assertTrue(all(count == 0 for count in series.values()))

    async def test_rollup_for_every_user_even_without_activity(self):
        store = FakeRecordStore(
            users=[make_user("busy"), make_user("idle", first_name="Ida", last_name="Le")],
            submissions=[make_submission("s1", "busy", days_ago(2))],
        )

        report = await self._generate(store)

        self.assertEqual([r.user_id for r in report.users], ["busy", "idle"])
        idle = report.users[1]
        self.assertEqual(idle.display_name, "Ida Le")
        self.assertEqual(idle.total_submissions, 0)
        self.assertEqual(idle.submissions_last_30, 0)
        self.assertEqual(idle.total_documents, 0)
        self.assertEqual(idle.total_chat_messages, 0)
        self.assertEqual(idle.total_conversations, 0)
        self.assertEqual(idle.active_days_last_30, 0)
        self.assertEqual(idle.submissions_by_day, {})
        self.assertEqual(idle.template_distribution, {})
        self.assertEqual(report.stats.active_users_last_30, 1)
        self.assertEqual(report.stats.inactive_users, 1)

    async def test_lifetime_and_window_submission_counters_are_distinct(self):
        store = FakeRecordStore(
            users=[make_user("u1")],
            submissions=[
                make_submission("recent", "u1", days_ago(3)),
                make_submission("old", "u1", days_ago(90)),
            ],
        )

        report = await self._generate(store)
        rollup = report.users[0]

        self.assertEqual(rollup.total_submissions, 2)
        self.assertEqual(rollup.submissions_last_30, 1)
        self.assertEqual(rollup.submissions_by_day, {_day(3): 1})
        self.assertEqual(report.stats.total_submissions, 2)
        self.assertEqual(report.stats.submissions_last_30, 1)

    async def test_active_days_is_union_of_submission_and_message_days(self):
        store = FakeRecordStore(
            users=[make_user("u1")],
            submissions=[
                make_submission("s1", "u1", days_ago(2)),
                make_submission("s2", "u1", days_ago(2) + timedelta(hours=1)),
                make_submission("s3", "u1", days_ago(45)),
            ],
            chat_messages=[
                make_message("m1", "u1", days_ago(2) - timedelta(hours=1)),
                make_message("m2", "u1", days_ago(10), role="assistant"),
                make_message("m3", "u1", days_ago(40)),
            ],
        )

        report = await self._generate(store)

        self.assertEqual(report.users[0].active_days_last_30, 2)
        self.assertEqual(report.stats.avg_active_days, 2)

    async def test_conversations_counted_over_all_messages(self):
        store = FakeRecordStore(
            users=[make_user("u1"), make_user("u2")],
            chat_messages=[
                make_message("m1", "u1", days_ago(1), conversation_id="a"),
                make_message("m2", "u1", days_ago(1), conversation_id="a", role="assistant"),
                make_message("m3", "u1", days_ago(200), conversation_id="b"),
                make_message("m4", "u2", days_ago(3), conversation_id="c"),
                make_message("m5", "ghost", days_ago(3), conversation_id="d"),
            ],
        )

        report = await self._generate(store)
        by_user = {rollup.user_id: rollup for rollup in report.users}

        self.assertEqual(by_user["u1"].total_conversations, 2)
        self.assertEqual(by_user["u1"].total_chat_messages, 3)
        self.assertEqual(by_user["u1"].total_user_messages, 2)
        self.assertEqual(by_user["u2"].total_conversations, 1)
        self.assertEqual(report.stats.unique_conversations, 4)
        self.assertEqual(report.stats.total_chat_messages, 5)
        self.assertEqual(report.stats.user_messages, 4)
        self.assertEqual(report.stats.assistant_messages, 1)
        self.assertEqual(report.stats.chat_messages_last_30, 4)
        self.assertEqual(report.stats.chat_messages_last_7, 4)
        self.assertEqual(report.trends.chat_messages_by_day[_day(1)], 2)
        self.assertEqual(report.trends.user_messages_by_day[_day(1)], 1)

    async def test_documents_and_global_counts(self):
        store = FakeRecordStore(
            users=[
                make_user("u1", status="approved"),
                make_user("u2", status="pending"),
                make_user("u3", status="rejected"),
            ],
            documents=[
                make_document("d1", "u1", days_ago(1), processed_at=days_ago(1)),
                make_document("d2", "u1", days_ago(10)),
                make_document("d3", "u2", days_ago(60), processed_at=days_ago(59)),
            ],
            templates=[make_template("t1", []), make_template("t2", [])],
            questions=[Question(id=f"q{i}", title=f"Question {i}") for i in range(1, 4)],
            chunk_count=42,
            chunks_by_user={"u1": 30, "u2": 12},
        )

        report = await self._generate(store)
        by_user = {rollup.user_id: rollup for rollup in report.users}

        self.assertEqual(by_user["u1"].total_documents, 2)
        self.assertEqual(by_user["u1"].processed_documents, 1)
        self.assertEqual(by_user["u2"].processed_documents, 1)
        self.assertEqual(by_user["u1"].total_chunks, 30)
        self.assertEqual(by_user["u3"].total_chunks, 0)
        stats = report.stats
        self.assertEqual(
            (stats.total_users, stats.approved_users, stats.pending_users, stats.rejected_users),
            (3, 1, 1, 1),
        )
        self.assertEqual(stats.total_documents, 3)
        self.assertEqual(stats.processed_documents, 2)
        self.assertEqual(stats.documents_last_30, 2)
        self.assertEqual(stats.documents_last_7, 1)
        self.assertEqual(stats.avg_documents_per_user, 1)
        self.assertEqual(stats.total_chunks, 42)
        self.assertEqual(stats.total_templates, 2)
        self.assertEqual(stats.total_questions, 3)
        self.assertEqual(report.trends.documents_by_day[_day(10)], 1)

    async def test_submissions_today_uses_calendar_day(self):
        store = FakeRecordStore(
            users=[make_user("u1")],
            submissions=[
                make_submission("morning", "u1", NOW.replace(hour=0, minute=5)),
                make_submission("yesterday", "u1", NOW.replace(hour=0) - timedelta(minutes=1)),
            ],
        )

        report = await self._generate(store)

        self.assertEqual(report.stats.submissions_today, 1)
        self.assertEqual(report.stats.submissions_last_7, 2)

    async def test_rows_after_reference_time_are_outside_every_window(self):
        later = NOW + timedelta(days=3)
        store = FakeRecordStore(
            users=[make_user("u1")],
            submissions=[
                make_submission("past", "u1", days_ago(2)),
                make_submission("later", "u1", later),
                make_submission("same-day-later", "u1", NOW + timedelta(hours=1)),
            ],
            documents=[make_document("d1", "u1", NOW + timedelta(minutes=30))],
            chat_messages=[make_message("m1", "u1", NOW + timedelta(days=5))],
        )

        report = await self._generate(store)
        rollup = report.users[0]
        stats = report.stats

        self.assertEqual(stats.submissions_last_30, 1)
        self.assertEqual(sum(report.trends.submissions_by_day.values()), 1)
        self.assertEqual(stats.submissions_last_7, 1)
        self.assertEqual(stats.submissions_today, 0)
        self.assertEqual(stats.documents_last_30, 0)
        self.assertEqual(stats.documents_last_7, 0)
        self.assertEqual(stats.chat_messages_last_30, 0)
        self.assertEqual(stats.chat_messages_last_7, 0)
        self.assertEqual(rollup.submissions_last_30, 1)
        self.assertEqual(rollup.submissions_by_day, {_day(2): 1})
        self.assertEqual(rollup.active_days_last_30, 1)
        self.assertEqual([t.submission_count for t in report.template_stats], [1])
        # Lifetime figures still cover every row
        self.assertEqual(rollup.total_submissions, 3)
        self.assertEqual(stats.total_chat_messages, 1)

    async def test_template_stats_ranked_by_window_submissions(self):
        store = FakeRecordStore(
            users=[make_user("u1")],
            templates=[
                make_template("tpl-a", [], title="Intake"),
                make_template("tpl-b", [], title="Feedback"),
                make_template("tpl-idle", [], title="Idle"),
            ],
            submissions=[
                make_submission("s1", "u1", days_ago(1), template_id="tpl-b"),
                make_submission("s2", "u1", days_ago(2), template_id="tpl-a"),
                make_submission("s3", "u1", days_ago(3), template_id="tpl-a"),
                make_submission("s4", "u1", days_ago(60), template_id="tpl-a"),
                make_submission("s5", "u1", days_ago(4), template_id="tpl-gone"),
            ],
        )

        report = await self._generate(store)

        self.assertEqual(
            [(t.template_id, t.template_name, t.submission_count) for t in report.template_stats],
            [("tpl-a", "Intake", 2), ("tpl-b", "Feedback", 1), ("tpl-gone", "tpl-gone", 1)],
        )

    async def test_last_submission_per_user(self):
        store = FakeRecordStore(
            users=[make_user("u1"), make_user("u2")],
            submissions=[
                make_submission("s1", "u1", days_ago(5)),
                make_submission("s2", "u1", days_ago(1)),
                make_submission("s3", "u1", days_ago(40)),
            ],
        )

        report = await self._generate(store)
        by_user = {rollup.user_id: rollup for rollup in report.users}

        self.assertEqual(by_user["u1"].last_submission, days_ago(1))
        self.assertIsNone(by_user["u2"].last_submission)

    async def test_no_users_means_zero_averages(self):
        store = FakeRecordStore(
            submissions=[make_submission("s1", "nobody", days_ago(1))],
            documents=[make_document("d1", "nobody", days_ago(1))],
            chat_messages=[make_message("m1", "nobody", days_ago(1))],
        )

        report = await self._generate(store)

        self.assertEqual(report.users, [])
        self.assertEqual(report.stats.total_submissions, 1)
        self.assertEqual(report.stats.avg_submissions_per_user, 0)
        self.assertEqual(report.stats.avg_documents_per_user, 0)
        self.assertEqual(report.stats.avg_chat_messages_per_user, 0)
        self.assertEqual(report.stats.avg_active_days, 0)

    async def test_template_filter_scopes_all_submission_figures(self):
        store = FakeRecordStore(
            users=[make_user("u1")],
            submissions=[
                make_submission("s1", "u1", days_ago(1), template_id="tpl-a"),
                make_submission("s2", "u1", days_ago(2), template_id="tpl-b"),
                make_submission("s3", "u1", days_ago(50), template_id="tpl-a"),
            ],
            documents=[make_document("d1", "u1", days_ago(4))],
            chat_messages=[make_message("m1", "u1", days_ago(4))],
        )

        unfiltered = await self._generate(store)
        filtered = await self._generate(store, template_id="tpl-a")

        self.assertEqual(store.submission_filters, [None, "tpl-a"])
        self.assertIsNone(unfiltered.template_id)
        self.assertEqual(unfiltered.users[0].template_distribution, {"tpl-a": 2, "tpl-b": 1})

        rollup = filtered.users[0]
        self.assertEqual(filtered.template_id, "tpl-a")
        self.assertEqual(rollup.total_submissions, 2)
        self.assertEqual(rollup.submissions_last_30, 1)
        self.assertEqual(rollup.template_distribution, {"tpl-a": 2})
        self.assertEqual(rollup.active_days_last_30, 2)
        self.assertEqual(filtered.stats.total_submissions, 2)
        self.assertEqual(sum(filtered.trends.submissions_by_day.values()), 1)
        # Non-submission data is never filtered
        self.assertEqual(filtered.stats.total_documents, 1)
        self.assertEqual(filtered.stats.total_chat_messages, 1)

    async def test_same_input_gives_identical_output(self):
        store = FakeRecordStore(
            users=[make_user("u1"), make_user("u2", status="pending")],
            submissions=[
                make_submission("s1", "u1", days_ago(1)),
                make_submission("s2", "u2", days_ago(9), template_id="tpl-2"),
            ],
            documents=[make_document("d1", "u2", days_ago(3), processed_at=days_ago(2))],
            chat_messages=[make_message("m1", "u1", days_ago(6), conversation_id="x")],
            chunk_count=7,
        )

        first = await self._generate(store)
        second = await self._generate(store)

        self.assertEqual(
            first.model_dump_json(by_alias=True),
            second.model_dump_json(by_alias=True),
        )

    async def test_aware_reference_time_is_normalised_to_utc(self):
        store = FakeRecordStore(users=[make_user("u1")])
        aggregator = StatsAggregator(store=store, window_days=30, week_days=7)
        aware_now = datetime(2026, 3, 15, 20, 0, tzinfo=timezone(timedelta(hours=9)))

        report = await aggregator.generate_stats(reference_time=aware_now)

        self.assertEqual(report.date_range.to_date, datetime(2026, 3, 15, 11, 0))
        self.assertEqual(list(report.trends.submissions_by_day)[-1], date(2026, 3, 15).isoformat())

    async def test_fetch_failure_propagates_unchanged(self):
        failure = ConnectionError("database unavailable")
        store = FakeRecordStore(error=failure)
        aggregator = StatsAggregator(store=store)

        with self.assertRaises(ConnectionError) as ctx:
            await aggregator.generate_stats(reference_time=NOW, template_id="tpl-1")

        self.assertIs(ctx.exception, failure)

    async def test_users_missing_from_user_table_are_skipped(self):
        report = build_stats_report(
            now=NOW,
            window_days=30,
            week_days=7,
            submissions=[make_submission("s1", "ghost", days_ago(1))],
            documents=[],
            chat_messages=[],
            users=[make_user("u1")],
            templates=[],
            questions=[],
            total_chunks=0,
        )

        self.assertEqual(report.users[0].total_submissions, 0)
        self.assertEqual(report.stats.total_submissions, 1)
        self.assertEqual(report.stats.active_users_last_30, 0)


class StatsReportSerializationTests(unittest.TestCase):
    def test_camel_case_keys(self):
        report = build_stats_report(
            now=NOW,
            window_days=30,
            week_days=7,
            submissions=[],
            documents=[],
            chat_messages=[],
            users=[make_user("u1", name="Una")],
            templates=[],
            questions=[],
            total_chunks=0,
        )

        payload = report.model_dump(by_alias=True, mode="json")

        self.assertIn("activeDaysLast30", payload["users"][0])
        self.assertEqual(payload["users"][0]["displayName"], "Una")
        self.assertIn("avgSubmissionsPerUser", payload["stats"])
        self.assertIn("submissionsLast30", payload["stats"])
        self.assertIn("chatMessagesByDay", payload["trends"])
        self.assertIn("lastSubmission", payload["users"][0])
        self.assertIn("totalChunks", payload["users"][0])
        self.assertEqual(payload["templateStats"], [])
        self.assertEqual(payload["dateRange"]["to"], "2026-03-15T12:00:00")
        self.assertIsNone(payload["templateId"])
