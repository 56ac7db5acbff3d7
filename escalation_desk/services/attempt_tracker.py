import logging
from dataclasses import dataclass

from escalation_desk.core.locks import KeyedLock

logger = logging.getLogger(__name__)

ESCALATION_THRESHOLD = 3


@dataclass(frozen=True)
class AttemptEvaluation:
    escalate: bool
    attempts_remaining: int
    total_attempts: int


@dataclass(frozen=True)
class SessionStatus:
    attempts: int
    attempts_remaining: int
    can_escalate: bool


class SessionAttemptTracker:
    """
    Per-session dissatisfaction counter.

    The stored count is the max of what we already had and what the caller observed, so a
    client re-sending a transcript never inflates it. Reaching the threshold clears the
    session under the same lock that read the count, so one streak escalates once.
    """

    def __init__(self, threshold: int = ESCALATION_THRESHOLD) -> None:
        self.threshold = max(threshold, 1)
        self._counts: dict[str, int] = {}
        self._locks = KeyedLock()

    def record_and_evaluate(self, session_id: str, observed_unhelpful: int) -> AttemptEvaluation:
        with self._locks.hold(session_id):
            total = max(self._counts.get(session_id, 0), max(observed_unhelpful, 0))
            if total >= self.threshold:
                self._counts.pop(session_id, None)
                logger.info(
                    "Escalation threshold reached", extra={"session_id": session_id, "attempts": total}
                )
                return AttemptEvaluation(escalate=True, attempts_remaining=0, total_attempts=total)
            self._counts[session_id] = total

        return AttemptEvaluation(
            escalate=False,
            attempts_remaining=self.threshold - total,
            total_attempts=total,
        )

    def query(self, session_id: str) -> SessionStatus:
        attempts = self._counts.get(session_id, 0)
        return SessionStatus(
            attempts=attempts,
            attempts_remaining=max(0, self.threshold - attempts),
            can_escalate=attempts >= self.threshold,
        )

    def reset(self, session_id: str) -> None:
        with self._locks.hold(session_id):
            self._counts.pop(session_id, None)

    def tracked_sessions(self) -> int:
        return len(self._counts)
