"""Live wizard instances, keyed by wizard id.

A wizard is held in process memory between requests; idle ones expire
after ``wizard_session_ttl_seconds``. Anything that must survive a
restart goes through the draft store.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from admissions.config import settings
from admissions.middleware.exceptions import WizardNotFoundError
from admissions.services.wizard import WizardController
from admissions.utils.numbering import generate_wizard_id

logger = logging.getLogger(__name__)


@dataclass
class WizardSession:
    wizard_id: str
    kind: str  # "application" or "renewal"
    controller: WizardController
    last_seen: float


class WizardSessionRegistry:
    def __init__(self, ttl_seconds: int | None = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = settings.wizard_session_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._sessions: dict[str, WizardSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, kind: str, controller: WizardController) -> WizardSession:
        self.purge_expired()
        session = WizardSession(
            wizard_id=generate_wizard_id(),
            kind=kind,
            controller=controller,
            last_seen=self._clock(),
        )
        self._sessions[session.wizard_id] = session
        return session

    def get(self, wizard_id: str) -> WizardSession:
        session = self._sessions.get(wizard_id)
        if session is None or self._is_expired(session):
            self._sessions.pop(wizard_id, None)
            raise WizardNotFoundError(wizard_id)
        session.last_seen = self._clock()
        return session

    def discard(self, wizard_id: str) -> bool:
        session = self._sessions.pop(wizard_id, None)
        if session is None:
            return False
        session.controller.abort()
        return True

    def _is_expired(self, session: WizardSession) -> bool:
        # A submission in flight keeps its session alive
        if session.controller.is_busy:
            return False
        return self._clock() - session.last_seen > self.ttl_seconds

    def purge_expired(self) -> int:
        expired = [wid for wid, s in self._sessions.items() if self._is_expired(s)]
        for wid in expired:
            self._sessions.pop(wid, None)
        if expired:
            logger.info(f"Expired {len(expired)} idle wizard session(s)")
        return len(expired)
