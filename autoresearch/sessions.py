"""Per-user session bookkeeping for the chat/HTTP transport."""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from pydantic import BaseModel, Field

from .errors import SessionBusyError
from .utils import log_structured

T = TypeVar("T")


class UserSession(BaseModel):
    user_id: str
    username: Optional[str] = None
    awaiting_topic: bool = False
    active_topic: Optional[str] = None
    started_at: Optional[datetime] = None
    history: List[str] = Field(default_factory=list)


class SessionStore:
    """In-memory session map keyed by user id; lives only as long as the process."""

    def __init__(self):
        self._sessions: Dict[str, UserSession] = {}

    def get(self, user_id: str, username: Optional[str] = None) -> UserSession:
        session = self._sessions.get(user_id)
        if session is None:
            session = UserSession(user_id=user_id, username=username)
            self._sessions[user_id] = session
        elif username and not session.username:
            session.username = username
        return session

    def begin(self, user_id: str, topic: str) -> UserSession:
        """Mark a run as active; only one run per user at a time."""

        session = self.get(user_id)
        if session.active_topic is not None:
            raise SessionBusyError(
                f"Research on {session.active_topic!r} is already in progress for user {user_id}"
            )

        session.active_topic = topic
        session.started_at = datetime.now(timezone.utc)
        session.awaiting_topic = False
        return session

    def finish(self, user_id: str, success: bool = True) -> UserSession:
        """Clear the active run; successful topics are added to the history."""

        session = self.get(user_id)
        if session.active_topic and success:
            session.history.append(session.active_topic)
        session.active_topic = None
        session.started_at = None
        return session

    def history(self, user_id: str) -> List[str]:
        session = self._sessions.get(user_id)
        return list(session.history) if session else []

    def clear(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    def __len__(self) -> int:
        return len(self._sessions)


async def run_with_progress_pings(
    awaitable: Awaitable[T],
    ping: Callable[[int], Union[None, Awaitable[None]]],
    interval: float = 20.0
) -> T:
    """
    Await ``awaitable`` while calling ``ping(n)`` every ``interval`` seconds.

    The ping task is cancelled as soon as the awaitable settles, whether it
    succeeds or raises.
    """

    async def pinger() -> None:
        count = 0
        while True:
            await asyncio.sleep(interval)
            count += 1
            try:
                outcome = ping(count)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                log_structured("progress_ping_failed", {
                    "ping": count,
                    "error": str(e)
                }, level=logging.WARNING)

    ping_task = asyncio.create_task(pinger())
    try:
        return await awaitable
    finally:
        ping_task.cancel()
        try:
            await ping_task
        except asyncio.CancelledError:
            pass
