"""Effect sinks. Delivery and retries belong to the host application."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Protocol

from workflow_app.core.models import Effect, EffectType


class Notifier(Protocol):
    def publish(self, effect: Effect) -> None: ...


class LoggingNotifier:
    """Writes each effect to the log instead of delivering it."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def publish(self, effect: Effect) -> None:
        self._logger.info(
            "Notify %s: %s %s", effect.recipient_id, effect.type.value, effect.payload
        )


class RecordingNotifier:
    """Keeps published effects in memory, mostly for tests and dashboards."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._effects: list[Effect] = []

    def publish(self, effect: Effect) -> None:
        with self._lock:
            self._effects.append(effect)

    def get_effects(self, effect_type: EffectType | None = None) -> list[Effect]:
        with self._lock:
            if effect_type is None:
                return list(self._effects)
            return [e for e in self._effects if e.type == effect_type]

    def get_inbox(self, recipient_id: str) -> list[Effect]:
        with self._lock:
            return [e for e in self._effects if e.recipient_id == recipient_id]

    def clear(self) -> None:
        with self._lock:
            self._effects.clear()
