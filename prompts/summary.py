"""
Conversation summary prompt.

Keeps a rolling summary of long conversations so the chat turn can carry
their history without replaying every message.
"""

SUMMARY_SYSTEM_PROMPT = """You summarize long conversations between a user and their companion.

Write one paragraph (under 200 words) capturing what was discussed, decisions made, people and plans mentioned, and how the user seemed to feel.
If a previous summary is given, extend it with what happened since instead of starting over.
Plain text only, no headings."""

SUMMARY_USER_PROMPT = """## Previous Summary
{previous_summary}

## Conversation
{transcript}

Write the updated summary now."""
