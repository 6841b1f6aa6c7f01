"""
Prompts module - All LLM prompts organized by feature.

Import prompts directly:
    from prompts import COMPANION_SYSTEM_PROMPT, EXTRACTION_SYSTEM_PROMPT

Or import from specific modules:
    from prompts.extraction import EXTRACTION_USER_PROMPT
"""

from prompts.system_frame import COMPANION_SYSTEM_PROMPT, FIRST_MESSAGE_INSTRUCTIONS
from prompts.extraction import EXTRACTION_SYSTEM_PROMPT, EXTRACTION_USER_PROMPT
from prompts.snapshot import SNAPSHOT_SYSTEM_PROMPT
from prompts.proactive import PROACTIVE_MESSAGE_PROMPT, PROACTIVE_USER_PROMPT
from prompts.summary import SUMMARY_SYSTEM_PROMPT, SUMMARY_USER_PROMPT

__all__ = [
    "COMPANION_SYSTEM_PROMPT",
    "FIRST_MESSAGE_INSTRUCTIONS",
    "EXTRACTION_SYSTEM_PROMPT",
    "EXTRACTION_USER_PROMPT",
    "SNAPSHOT_SYSTEM_PROMPT",
    "PROACTIVE_MESSAGE_PROMPT",
    "PROACTIVE_USER_PROMPT",
    "SUMMARY_SYSTEM_PROMPT",
    "SUMMARY_USER_PROMPT",
]
