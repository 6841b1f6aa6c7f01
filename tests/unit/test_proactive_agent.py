"""
Tests for the proactive outreach scheduler.
"""

from datetime import timedelta

import pytest
from unittest.mock import AsyncMock

from agents.proactive_agent import (
    ProactiveAgent,
    callback_candidate,
    goal_candidate,
    merge_candidates,
    re_engagement_candidate,
)
from schemas import ProactiveCandidate


@pytest.fixture
def agent(mock_db, mock_llm):
    agent = ProactiveAgent(model="test-model")
    agent.db = mock_db
    agent.llm = mock_llm
    return agent


class TestCandidates:

    def test_callback_context(self, records):
        candidate = callback_candidate(records.callback(id=3, content="Ask about the interview"))

        assert candidate.trigger_context == "Callback: Ask about the interview"
        assert candidate.trigger_type == "date_event"
        assert candidate.callback_id == 3

    def test_goal_context(self, records):
        candidate = goal_candidate(records.goal(id=4, progress=None))

        assert candidate.trigger_context == (
            'Goal due for check-in: "Get 3 dates this month" (dating). '
            "Progress: unknown. Check-in interval: weekly."
        )
        assert candidate.goal_id == 4

    def test_re_engagement_context(self, records, fixed_now):
        user = records.user(last_active_at=fixed_now - timedelta(days=5, hours=3))

        candidate = re_engagement_candidate(user, fixed_now)

        assert candidate.trigger_context == "User hasn't messaged in 5 days. They were previously active."

    def test_merge_keeps_first_source_per_user(self):
        callback = ProactiveCandidate(user_id=1, trigger_type="date_event", trigger_context="Callback: x", callback_id=9)
        re_engage = ProactiveCandidate(user_id=1, trigger_type="re_engagement", trigger_context="quiet")
        other = ProactiveCandidate(user_id=2, trigger_type="re_engagement", trigger_context="quiet")

        merged = merge_candidates([callback], [], [], [re_engage, other])

        assert [(c.user_id, c.trigger_type) for c in merged] == [(1, "date_event"), (2, "re_engagement")]


class TestProactiveBatch:

    async def test_callback_wins_over_re_engagement_for_same_user(self, agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_all_triggered_callbacks.return_value = [records.callback(id=3)]
        mock_db.get_users_for_re_engagement.return_value = [records.user(last_active_at=fixed_now - timedelta(days=4))]
        mock_db.get_user_by_id.return_value = records.user()
        mock_db.get_active_insights.return_value = [records.insight()]
        mock_llm.generate.return_value = "hey! how did the date with alex go?"

        stats = await agent.run_proactive_batch(now=fixed_now)

        assert stats.generated == 1
        mock_db.create_proactive_message.assert_awaited_once()
        kwargs = mock_db.create_proactive_message.await_args.kwargs
        assert kwargs["trigger_type"] == "date_event"
        assert kwargs["callback_id"] == 3
        mock_db.mark_callback_delivered.assert_awaited_once_with(3)

    async def test_rate_limit_skips_user_named_by_several_sources(self, agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_all_triggered_callbacks.return_value = [records.callback(id=3)]
        mock_db.get_users_for_re_engagement.return_value = [records.user(last_active_at=fixed_now - timedelta(days=4))]
        mock_db.count_proactive_messages_since.return_value = 2

        stats = await agent.run_proactive_batch(now=fixed_now)

        assert stats.skipped_rate_limit == 1
        assert stats.generated == 0
        mock_llm.generate.assert_not_called()
        mock_db.create_proactive_message.assert_not_called()
        mock_db.count_proactive_messages_since.assert_awaited_once_with(1, fixed_now - timedelta(hours=24))

    async def test_no_context_still_consumes_goal(self, agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_goals_due_for_check_in.return_value = [records.goal(id=7)]
        mock_db.get_user_by_id.return_value = records.user()

        stats = await agent.run_proactive_batch(now=fixed_now)

        assert stats.skipped_no_context == 1
        mock_llm.generate.assert_not_called()
        mock_db.mark_goal_checked_in.assert_awaited_once_with(7, now=fixed_now)

    async def test_empty_llm_output_is_an_error(self, agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_users_for_re_engagement.return_value = [records.user(last_active_at=fixed_now - timedelta(days=4))]
        mock_db.get_user_by_id.return_value = records.user()
        mock_db.get_recent_messages_for_user.return_value = records.messages(3)
        mock_llm.generate.return_value = "   "

        stats = await agent.run_proactive_batch(now=fixed_now)

        assert stats.generated == 0
        assert len(stats.errors) == 1
        mock_db.create_proactive_message.assert_not_called()

    async def test_housekeeping_runs_first(self, agent, mock_db, fixed_now):
        mock_db.expire_stale_callbacks.return_value = 4
        mock_db.expire_stale_proactive_messages.return_value = 2

        stats = await agent.run_proactive_batch(now=fixed_now)

        assert stats.callbacks_expired == 4
        assert stats.messages_expired == 2
        mock_db.expire_stale_callbacks.assert_awaited_once_with(fixed_now - timedelta(days=7))
        mock_db.expire_stale_proactive_messages.assert_awaited_once_with(fixed_now - timedelta(hours=48))

    async def test_max_users_truncates_candidates(self, agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_users_for_re_engagement.return_value = [
            records.user(id=i, last_active_at=fixed_now - timedelta(days=4)) for i in range(1, 6)
        ]

        stats = await agent.run_proactive_batch(now=fixed_now, max_users=2)

        assert mock_db.count_proactive_messages_since.await_count == 2
        assert stats.skipped_no_context == 2

    async def test_per_user_failure_does_not_stop_batch(self, agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_users_for_re_engagement.return_value = [
            records.user(id=1, last_active_at=fixed_now - timedelta(days=4)),
            records.user(id=2, last_active_at=fixed_now - timedelta(days=4)),
        ]
        mock_db.count_proactive_messages_since = AsyncMock(side_effect=[RuntimeError("db hiccup"), 0])

        stats = await agent.run_proactive_batch(now=fixed_now)

        assert stats.errors == ["User 1: db hiccup"]
        assert stats.skipped_no_context == 1


class TestCompactContext:

    async def test_missing_user_has_no_context(self, agent):
        assert await agent.build_compact_context(1) is None

    async def test_snapshot_preferred_and_topped_up(self, agent, mock_db, records):
        mock_db.get_user_by_id.return_value = records.user()
        mock_db.get_latest_snapshot.return_value = records.snapshot(text="Sam is a designer.")
        mock_db.get_active_goals.return_value = [records.goal()]
        mock_db.get_active_insights.return_value = [records.insight()]

        context = await agent.build_compact_context(1)

        assert context.startswith("Sam is a designer.")
        assert "Current goals:\n- Get 3 dates this month (dating, active): 1 so far" in context
        assert "Insights:" not in context

    async def test_raw_facts_without_snapshot(self, agent, mock_db, records):
        mock_db.get_user_by_id.return_value = records.user()
        mock_db.get_active_insights.return_value = [records.insight()]
        mock_db.get_recent_messages_for_user.return_value = [
            records.message(id=2, role="assistant", content="how was it?", minutes_ago=1),
            records.message(id=1, role="user", content="went on a date", minutes_ago=2),
        ]

        context = await agent.build_compact_context(1)

        assert context.startswith("User's name: Sam\nCommunication style: balanced")
        assert "- [preference] Prefers texting over calls" in context
        assert context.endswith("Recent conversation:\n[user]: went on a date\n[assistant]: how was it?")
