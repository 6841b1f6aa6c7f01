"""Run statistics returned by every scheduled job."""

from typing import List

from pydantic import BaseModel, Field


class JobStats(BaseModel):
    """Fields every job reports."""

    errors: List[str] = Field(default_factory=list, description="'<Unit> <id>: <message>' per failed unit")
    duration_ms: int = Field(0, description="Wall-clock time of the run")


class ExtractionStats(JobStats):
    conversations_processed: int = 0
    skipped: int = Field(0, description="Conversations too short to mine")
    parse_failures: int = Field(0, description="Responses that were not valid JSON")
    entities_created: int = 0
    entities_updated: int = 0
    goals_created: int = 0
    goals_updated: int = 0
    emotions_logged: int = 0
    callbacks_created: int = 0
    insights_created: int = 0
    insights_updated: int = 0
    insights_deactivated: int = 0
    dropped: int = Field(0, description="Rows rejected by validation or dedupe")


class SummaryStats(JobStats):
    summarized: int = 0
    skipped: int = 0


class SnapshotStats(JobStats):
    snapshots_created: int = 0
    skipped: int = 0


class ProactiveStats(JobStats):
    generated: int = 0
    skipped_rate_limit: int = 0
    skipped_no_context: int = 0
    callbacks_expired: int = 0
    messages_expired: int = 0
