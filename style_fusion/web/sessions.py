from __future__ import annotations

import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from ..pipeline.orchestrator import FusionOrchestrator


@dataclass
class WebSession:
    session_id: str
    orchestrator: FusionOrchestrator
    notice: Optional[str] = None

    def pop_notice(self) -> Optional[str]:
        notice, self.notice = self.notice, None
        return notice


class SessionStore:
    """In-memory browser sessions; the oldest is evicted past ``max_sessions``."""

    def __init__(self, factory: Callable[[], FusionOrchestrator], max_sessions: int = 256) -> None:
        self._factory = factory
        self._max_sessions = max_sessions
        self._sessions: "OrderedDict[str, WebSession]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def get_or_create(self, session_id: Optional[str]) -> WebSession:
        if session_id and session_id in self._sessions:
            self._sessions.move_to_end(session_id)
            return self._sessions[session_id]
        session = WebSession(session_id=uuid.uuid4().hex, orchestrator=self._factory())
        self._sessions[session.session_id] = session
        while len(self._sessions) > self._max_sessions:
            self._sessions.popitem(last=False)
        return session
