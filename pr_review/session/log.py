"""Append-only conversation log, ephemeral or backed by a JSONL file.

File layout: one JSON object per line. The first line is a SessionHeader,
every following line is one ConversationTurn. A turn is written with a
single write of one complete line once the exchange has finished, so a
failed exchange never leaves a partial turn behind.
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import aiofiles
import pendulum
from pydantic import ValidationError

from pr_review.session.models import ConversationTurn, SessionHeader

logger = logging.getLogger(__name__)


def now_iso() -> str:
    return pendulum.now("UTC").to_iso8601_string()


class SessionLog:
    """Ordered log of conversation turns.

    Ephemeral logs (``path is None``) live only in memory. Durable logs
    mirror every appended turn to their file.
    """

    def __init__(
        self,
        header: SessionHeader,
        turns: Optional[List[ConversationTurn]] = None,
        path: Optional[Path] = None,
    ):
        self.header = header
        self._turns: List[ConversationTurn] = list(turns or [])
        self.path = path

    @classmethod
    def in_memory(cls, cwd: Path) -> "SessionLog":
        """Create an ephemeral log that is discarded with its conversation."""
        return cls(_new_header(cwd))

    @classmethod
    async def create(cls, sessions_dir: Path, cwd: Path) -> "SessionLog":
        """Create a new durable log file under sessions_dir.

        Args:
            sessions_dir: Directory for fresh logs (created if missing)
            cwd: Working directory recorded in the header

        Returns:
            SessionLog bound to the new file
        """
        created = pendulum.now("UTC")
        header = _new_header(cwd, created)
        stamp = created.format("YYYYMMDD[T]HHmmss")
        path = Path(sessions_dir) / f"{stamp}_{header.id}.jsonl"

        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, mode="x", encoding="utf-8") as f:
            await f.write(header.model_dump_json() + "\n")

        logger.debug(f"Created conversation log {path}")
        return cls(header, path=path)

    @classmethod
    async def open(cls, path: Path) -> "SessionLog":
        """Reopen an existing durable log in place.

        Appends made through the returned log go to the same file. A
        truncated last record left by an interrupted write is cut from the
        file here, so the next append starts on a fresh line.

        Raises:
            FileNotFoundError: If path does not exist
            ValueError: If the file is not a conversation log
        """
        path = Path(path)
        async with aiofiles.open(path, mode="r", encoding="utf-8", newline="") as f:
            content = await f.read()

        header, turns, intact = _parse_log(content, path)
        if intact != len(content) or not content.endswith("\n"):
            await _repair_tail(path, content[:intact])
        return cls(header, turns, path=path)

    @property
    def durable(self) -> bool:
        return self.path is not None

    @property
    def turns(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def messages(self) -> List[Dict[str, Any]]:
        """All turns flattened into one provider-neutral message history."""
        history: List[Dict[str, Any]] = []
        for turn in self._turns:
            history.extend(turn.messages)
        return history

    async def append(self, turn: ConversationTurn) -> None:
        """Append one completed turn.

        For durable logs the turn is written as one line and flushed before
        it becomes visible in memory; if the write fails, the in-memory
        history is unchanged.
        """
        if self.path is not None:
            line = turn.model_dump_json() + "\n"
            async with aiofiles.open(self.path, mode="a", encoding="utf-8") as f:
                await f.write(line)
                await f.flush()
                os.fsync(f.fileno())
        self._turns.append(turn)

    def __len__(self) -> int:
        return len(self._turns)


def _new_header(cwd: Path, created: Optional[pendulum.DateTime] = None) -> SessionHeader:
    timestamp = (created or pendulum.now("UTC")).to_iso8601_string()
    return SessionHeader(id=uuid.uuid4().hex[:12], timestamp=timestamp, cwd=str(cwd))


def _parse_log(content: str, path: Path) -> Tuple[SessionHeader, List[ConversationTurn], int]:
    """Parse a log file's content.

    Returns:
        The header, the turns, and the length of the intact prefix of
        content (everything up to the end of the last valid record)
    """
    # split on "\n" only; record JSON may hold other Unicode line breaks
    records: List[Tuple[str, int]] = []
    offset = 0
    for line in content.split("\n"):
        offset = min(offset + len(line) + 1, len(content))
        if line.strip():
            records.append((line, offset))
    if not records:
        raise ValueError(f"Conversation log is empty: {path}")

    try:
        header = SessionHeader.model_validate_json(records[0][0])
    except ValidationError as e:
        raise ValueError(f"Not a conversation log: {path}") from e

    intact = records[0][1]
    turns: List[ConversationTurn] = []
    for index, (line, end) in enumerate(records[1:], start=2):
        try:
            turns.append(ConversationTurn.model_validate_json(line))
        except ValidationError as e:
            if index == len(records):
                # interrupted final write
                logger.warning(f"Dropping truncated last record in {path}")
                break
            raise ValueError(f"Corrupt record on line {index} of {path}") from e
        intact = end

    return header, turns, intact


async def _repair_tail(path: Path, intact: str) -> None:
    """Cut the file back to its intact prefix, ending on a line break."""
    async with aiofiles.open(path, mode="r+b") as f:
        await f.truncate(len(intact.encode("utf-8")))
        await f.seek(0, os.SEEK_END)
        if not intact.endswith("\n"):
            await f.write(b"\n")
        await f.flush()
        os.fsync(f.fileno())


def promote_session(source: Path, pointer: Path) -> None:
    """Copy a finished log onto the well-known pointer.

    The copy lands in a temporary file beside the pointer and is then
    renamed over it, so readers see either the previous session or the new
    one, never a half-written file.
    """
    pointer.parent.mkdir(parents=True, exist_ok=True)
    staging = pointer.with_name(f".{pointer.name}.{uuid.uuid4().hex[:8]}.tmp")
    try:
        shutil.copyfile(source, staging)
        os.replace(staging, pointer)
    finally:
        if staging.exists():
            staging.unlink()
    logger.info(f"Promoted session {source} -> {pointer}")
