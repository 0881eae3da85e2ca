"""Observability hook for gesture lifecycle events."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

logger = logging.getLogger(__name__)

GESTURE_START = "gesture_start"
PREVIEW_UPDATE = "preview_update"
COMMIT = "commit"
REJECT = "reject"
TIMEOUT = "timeout"
CORRECTION = "correction"

_LEVELS = {
    GESTURE_START: logging.INFO,
    PREVIEW_UPDATE: logging.DEBUG,
    COMMIT: logging.INFO,
    REJECT: logging.INFO,
    TIMEOUT: logging.WARNING,
    CORRECTION: logging.WARNING,
}


class Tracer:
    """Base tracer. Subclasses override ``event``; the default does nothing."""

    def event(self, name: str, **fields: Any) -> None:
        return None


class NullTracer(Tracer):
    pass


class LoggingTracer(Tracer):
    """Writes every lifecycle event to a stdlib logger at a level chosen per event."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def event(self, name: str, **fields: Any) -> None:
        level = _LEVELS.get(name, logging.DEBUG)
        if not self._log.isEnabledFor(level):
            return
        detail = " ".join(f"{k}={fields[k]}" for k in sorted(fields))
        self._log.log(level, "%s %s", name, detail)


@dataclass
class RecordingTracer(Tracer):
    """Keeps events in memory; handy in tests and when debugging a widget."""

    events: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)

    def event(self, name: str, **fields: Any) -> None:
        self.events.append((name, dict(fields)))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]
