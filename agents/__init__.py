"""Agent modules for the companion memory backend."""

from .orchestrator import ChatOrchestrator, ChatTurn, orchestrator
from .extraction_agent import ExtractionAgent, extraction_agent
from .summary_agent import SummaryAgent, summary_agent
from .snapshot_agent import SnapshotAgent, snapshot_agent
from .proactive_agent import ProactiveAgent, proactive_agent

__all__ = [
    "ChatOrchestrator",
    "ChatTurn",
    "orchestrator",
    "ExtractionAgent",
    "extraction_agent",
    "SummaryAgent",
    "summary_agent",
    "SnapshotAgent",
    "snapshot_agent",
    "ProactiveAgent",
    "proactive_agent",
]
