"""Session store: local session records plus read-only CLI transcripts."""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from pathlib import Path

from pydantic import ValidationError

from ccweb.data.stats_cache import load_stats_cache, totals_from_stats
from ccweb.data.transcripts import (
    find_transcript,
    iter_transcript_files,
    read_resume_info,
    read_transcript_messages,
    summarize_transcript,
)
from ccweb.models.sessions import (
    ChatMessage,
    ResumeInfo,
    SessionMetadata,
    StatsCache,
    TokenTotals,
    UsageDelta,
    UsageTotals,
)
from ccweb.timeutil import utc_now_iso

logger = logging.getLogger(__name__)

TITLE_LENGTH = 50
_WHITESPACE_RE = re.compile(r"\s+")


def generate_title(prompt: str) -> str:
    """Collapse whitespace and cap the first prompt at 50 characters."""
    cleaned = _WHITESPACE_RE.sub(" ", prompt).strip()
    if len(cleaned) <= TITLE_LENGTH:
        return cleaned
    return cleaned[:TITLE_LENGTH] + "..."


class SessionStore:
    """Owns ``sessions.json`` and reads the external CLI's project transcripts.

    The in-memory map is authoritative; the file is rewritten after every
    mutation and write failures are only logged. Sync routes run in worker
    threads, so every access to the map holds ``_lock``.
    """

    def __init__(self, sessions_file: Path, projects_dir: Path, stats_cache_path: Path) -> None:
        self._sessions_file = sessions_file
        self._projects_dir = projects_dir
        self._stats_cache_path = stats_cache_path
        self._sessions: dict[str, SessionMetadata] = {}
        self._lock = threading.RLock()
        self._load()

    def _load(self) -> None:
        if not self._sessions_file.is_file():
            return
        try:
            raw = json.loads(self._sessions_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to load sessions from %s", self._sessions_file)
            return
        if not isinstance(raw, list):
            logger.warning("Ignoring sessions file %s: expected a JSON array", self._sessions_file)
            return
        for item in raw:
            try:
                session = SessionMetadata.model_validate(item)
            except ValidationError:
                logger.warning("Skipping malformed session record in %s", self._sessions_file)
                continue
            self._sessions[session.id] = session
        logger.info("Loaded %d sessions from storage", len(self._sessions))

    def _save(self) -> None:
        """Rewrite the sessions file atomically. Caller holds ``_lock``."""
        payload = [s.model_dump(by_alias=True, mode="json") for s in self._sessions.values()]
        tmp_path = self._sessions_file.with_name(self._sessions_file.name + ".tmp")
        try:
            self._sessions_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(tmp_path, self._sessions_file)
        except OSError:
            logger.exception("Failed to save sessions to %s", self._sessions_file)

    # -- local records --

    def upsert(
        self,
        session_id: str,
        first_prompt: str,
        directory: str,
        usage: UsageDelta | None = None,
    ) -> SessionMetadata:
        """Create a record for a new id, or count another turn on an existing one."""
        now = utc_now_iso()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = SessionMetadata(
                    id=session_id,
                    title=generate_title(first_prompt),
                    directory=directory,
                    message_count=1,
                    created_at=now,
                    last_activity=now,
                )
                if usage is not None:
                    _accumulate(session, usage)
                self._sessions[session_id] = session
            else:
                session.message_count += 1
                session.last_activity = now
                if usage is not None:
                    _accumulate(session, usage)
            self._save()
            return session

    def update_usage(self, session_id: str, usage: UsageDelta) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            _accumulate(session, usage)
            session.last_activity = utc_now_iso()
            self._save()

    def get(self, session_id: str) -> SessionMetadata | None:
        with self._lock:
            return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        """Forget a local record. The CLI's transcript is left untouched."""
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                return False
            self._save()
            return True

    def list_all(self) -> list[SessionMetadata]:
        with self._lock:
            records = list(self._sessions.values())
        return sorted(records, key=lambda s: s.last_activity, reverse=True)

    # -- external transcripts --

    def list_external_sessions(self) -> list[SessionMetadata]:
        sessions: list[SessionMetadata] = []
        for project_dir, path in iter_transcript_files(self._projects_dir):
            summary = summarize_transcript(path, project_dir)
            if summary is not None:
                sessions.append(summary)
        sessions.sort(key=lambda s: s.last_activity, reverse=True)
        return sessions

    def list_sessions(self) -> list[SessionMetadata]:
        """Merge CLI transcripts with local records; transcripts win, local cost survives."""
        external = self.list_external_sessions()
        with self._lock:
            local_records = dict(self._sessions)
        merged: dict[str, SessionMetadata] = {}
        for session in external:
            local = local_records.get(session.id)
            if local is not None:
                session.total_cost_usd = local.total_cost_usd
            merged[session.id] = session
        for session in local_records.values():
            merged.setdefault(session.id, session)
        return sorted(merged.values(), key=lambda s: s.last_activity, reverse=True)

    def get_external_session(self, session_id: str) -> SessionMetadata | None:
        path = find_transcript(self._projects_dir, session_id)
        if path is None:
            return None
        return summarize_transcript(path, path.parent.name)

    def get_session_messages(self, session_id: str) -> list[ChatMessage] | None:
        path = find_transcript(self._projects_dir, session_id)
        if path is None:
            return None
        return read_transcript_messages(path, session_id)

    def get_resume_info(self, session_id: str) -> ResumeInfo | None:
        path = find_transcript(self._projects_dir, session_id)
        if path is None:
            return None
        return read_resume_info(path)

    # -- aggregates --

    def get_stats_cache(self) -> StatsCache | None:
        return load_stats_cache(self._stats_cache_path)

    def get_total_usage(self) -> UsageTotals:
        """Stats-cache totals whenever the file parses, else the local records."""
        stats = self.get_stats_cache()
        if stats is not None:
            return totals_from_stats(stats)

        totals = UsageTotals()
        with self._lock:
            for session in self._sessions.values():
                totals.input += session.total_tokens.input
                totals.output += session.total_tokens.output
                totals.cost_usd += session.total_cost_usd
        return totals


def _accumulate(session: SessionMetadata, usage: UsageDelta) -> None:
    session.total_tokens = TokenTotals(
        input=session.total_tokens.input + usage.input,
        output=session.total_tokens.output + usage.output,
    )
    session.total_cost_usd += usage.cost_usd
