"""
Tests for the snapshot and summary batch jobs.
"""

from datetime import timedelta

import pytest

from agents.snapshot_agent import SnapshotAgent, build_memory_data_prompt
from agents.summary_agent import SummaryAgent

LONG_SNAPSHOT = (
    "Sam is a product designer in Toronto who started dating again this winter. "
    "They are hopeful about Alex, a match from Hinge."
)


@pytest.fixture
def snapshot_agent(mock_db, mock_llm):
    agent = SnapshotAgent(model="test-model")
    agent.db = mock_db
    agent.llm = mock_llm
    return agent


@pytest.fixture
def summary_agent(mock_db, mock_llm):
    agent = SummaryAgent(model="test-model")
    agent.db = mock_db
    agent.llm = mock_llm
    return agent


class TestSnapshotBatch:

    async def test_creates_snapshot_for_user_with_facts(self, snapshot_agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_active_users.return_value = [records.user()]
        mock_db.get_active_insights.return_value = [records.insight()]
        mock_llm.generate.return_value = LONG_SNAPSHOT

        stats = await snapshot_agent.run_snapshot_batch(now=fixed_now)

        assert stats.snapshots_created == 1
        mock_db.create_snapshot.assert_awaited_once_with(1, LONG_SNAPSHOT, now=fixed_now)
        mock_db.get_active_users.assert_awaited_once_with(fixed_now - timedelta(days=30), 50)

    async def test_user_without_data_is_skipped(self, snapshot_agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_active_users.return_value = [records.user()]
        mock_db.get_recent_messages_for_user.return_value = records.messages(4)

        stats = await snapshot_agent.run_snapshot_batch(now=fixed_now)

        assert stats.skipped == 1
        mock_llm.generate.assert_not_called()

    async def test_fresh_snapshot_is_skipped(self, snapshot_agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_active_users.return_value = [records.user()]
        mock_db.get_active_goals.return_value = [records.goal()]
        mock_db.get_latest_snapshot.return_value = records.snapshot(hours_ago=3)

        stats = await snapshot_agent.run_snapshot_batch(now=fixed_now)

        assert stats.skipped == 1
        mock_llm.generate.assert_not_called()

    async def test_short_output_is_an_error(self, snapshot_agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_active_users.return_value = [records.user(id=4)]
        mock_db.get_active_goals.return_value = [records.goal(user_id=4)]
        mock_llm.generate.return_value = "Too short."

        stats = await snapshot_agent.run_snapshot_batch(now=fixed_now)

        assert stats.snapshots_created == 0
        assert len(stats.errors) == 1
        assert stats.errors[0].startswith("User 4:")
        mock_db.create_snapshot.assert_not_called()

    def test_prompt_puts_previous_snapshot_first(self, records):
        prompt = build_memory_data_prompt(
            user=records.user(),
            insights=[records.insight()],
            entities=[],
            goals=[],
            emotions=[],
            summaries=[],
            previous=records.snapshot(version=2, text="Earlier narrative."),
            recent_messages=[
                records.message(id=2, content="second", minutes_ago=1),
                records.message(id=1, content="first", minutes_ago=2),
            ],
            onboarding=[],
        )

        assert prompt.startswith("## Previous Snapshot (v2,")
        assert prompt.index("## User Basics") < prompt.index("## Insights")
        assert prompt.endswith("[user]: first\n[user]: second")


class TestSummaryBatch:

    async def test_summarizes_long_conversation(self, summary_agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_conversations_needing_summary.return_value = [records.conversation(summary="Old summary.")]
        mock_db.get_messages.return_value = records.messages(30)
        mock_llm.generate.return_value = "  They planned a second date and talked about work.  "

        stats = await summary_agent.run_summarization_batch(now=fixed_now)

        assert stats.summarized == 1
        mock_db.get_conversations_needing_summary.assert_awaited_once_with(30, 20)
        mock_db.update_conversation_summary.assert_awaited_once_with(
            10, "They planned a second date and talked about work.", now=fixed_now
        )
        assert "Old summary." in mock_llm.generate.await_args.kwargs["user_prompt"]

    async def test_blank_summary_is_an_error(self, summary_agent, mock_db, mock_llm, records, fixed_now):
        mock_db.get_conversations_needing_summary.return_value = [records.conversation(id=12)]
        mock_db.get_messages.return_value = records.messages(30, conversation_id=12)
        mock_llm.generate.return_value = ""

        stats = await summary_agent.run_summarization_batch(now=fixed_now)

        assert stats.summarized == 0
        assert stats.errors == ["Conversation 12: Empty summary"]
        mock_db.update_conversation_summary.assert_not_called()
