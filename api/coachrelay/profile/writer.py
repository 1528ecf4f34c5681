"""Render a session summary and store it as a retrievable profile file."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from coachrelay.assistant.client import AssistantClient
from coachrelay.core.config import CR_UPLOAD_DIR
from coachrelay.core.store import KeyValueStore

logger = logging.getLogger("coachrelay.profile")

RETRIEVAL_PURPOSE = "assistants"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def file_stem(session_id: str) -> str:
    """Session id reduced to characters safe in a file name."""
    return _UNSAFE_NAME_CHARS.sub("_", session_id) or "anonymous"


class SummaryFields(BaseModel):
    conversationSummary: str | None = ""
    insights: list[str] | None = Field(default_factory=list)
    focusAreas: list[str] | None = Field(default_factory=list)
    goals: str | None = ""
    personalDetails: str | None = ""
    progress: str | None = ""


def render_profile(session_id: str, fields: SummaryFields, updated_at: str | None = None) -> str:
    """Render *fields* into the fixed profile document template."""
    updated_at = updated_at or datetime.now(timezone.utc).isoformat()
    insights = "\n".join(f"{i}. {text}" for i, text in enumerate(fields.insights or [], 1))
    return (
        f"USER PROFILE: {session_id}\n"
        f"Last Updated: {updated_at}\n"
        f"\n"
        f"CONVERSATION HISTORY SUMMARY:\n"
        f"{fields.conversationSummary or 'No summary yet'}\n"
        f"\n"
        f"KEY INSIGHTS AND BREAKTHROUGHS:\n"
        f"{insights}\n"
        f"\n"
        f"COACHING PROGRESS:\n"
        f"{fields.progress or 'Initial session'}\n"
        f"\n"
        f"AREAS OF FOCUS:\n"
        f"{', '.join(fields.focusAreas or [])}\n"
        f"\n"
        f"PERSONAL DETAILS SHARED:\n"
        f"{fields.personalDetails or 'None yet'}\n"
        f"\n"
        f"GOALS AND OBJECTIVES:\n"
        f"{fields.goals or 'To be determined'}\n"
        f"\n"
        f"COACHING NOTES:\n"
        f"- User ID: {session_id}\n"
        f"- This user has engaged with the Entrepreneur Emotional Health coaching system\n"
        f"- Reference this profile in future conversations to provide continuity and build on past insights\n"
        f"- Always acknowledge past work and connect new insights to previous breakthroughs\n"
    )


class ProfileMemoryWriter:
    """Upload profile documents and remember the latest one per session.

    A newer profile replaces the mapping but the older remote file is kept.
    """

    def __init__(
        self,
        client: AssistantClient,
        store: KeyValueStore,
        upload_dir: str = CR_UPLOAD_DIR,
    ) -> None:
        self.client = client
        self.store = store
        self.upload_dir = upload_dir

    async def persist_summary(self, session_id: str, fields: SummaryFields) -> str:
        content = render_profile(session_id, fields)
        stem = file_stem(session_id)
        fd, tmp_path = tempfile.mkstemp(
            prefix=f"temp_profile_{stem}_", suffix=".txt", dir=self.upload_dir
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(content)
            uploaded = await self.client.upload_file(
                tmp_path, filename=f"profile_{stem}.txt", purpose=RETRIEVAL_PURPOSE
            )
        finally:
            os.unlink(tmp_path)

        document_id = uploaded["id"]
        previous = self.store.get(session_id)
        self.store.put(session_id, document_id)
        logger.info(
            "[PROFILE] Saved %s for %s%s",
            document_id, session_id, f" (supersedes {previous})" if previous else "",
        )
        return document_id

    def document_for(self, session_id: str) -> str | None:
        return self.store.get(session_id)

    def __len__(self) -> int:
        return len(self.store)
