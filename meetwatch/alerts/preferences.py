"""Timing preference ownership for meetwatch.

This module owns the user's alert timing preferences: it validates and clamps
edits, persists overrides to a small JSON file and tells listeners (the alert
scheduler) to recompute whenever a value actually changes.

Preferences managed:
- Default minutes before a meeting
- Length-based timing toggle and short/medium/long minute tiers
- Sound toggle and its own minutes-before
- Auto-join toggle
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import replace
from pathlib import Path
from typing import Any

from .config import TimingPreferences

LOGGER = logging.getLogger("meetwatch.preferences")

PreferencesListener = Callable[[TimingPreferences], None]


class PreferenceStore:
    """Holds the current TimingPreferences snapshot and notifies on change."""

    def __init__(
        self,
        defaults: TimingPreferences | None = None,
        *,
        storage_path: Path | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            defaults: Preferences derived from the environment
            storage_path: Optional JSON file holding user overrides
            logger: Optional logger instance
        """
        self._storage_path = storage_path
        self._logger = logger or LOGGER
        self._listeners: list[PreferencesListener] = []
        self._current = (defaults or TimingPreferences()).clamped()

    @property
    def current(self) -> TimingPreferences:
        return self._current

    def add_listener(self, listener: PreferencesListener) -> None:
        """Register a callback invoked with the new snapshot after every effective change."""
        self._listeners.append(listener)

    def load(self) -> TimingPreferences:
        """Apply persisted overrides on top of the defaults. Missing or corrupt files are ignored."""
        path = self._storage_path
        if path is None or not path.exists():
            return self._current
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            self._logger.warning("Failed to load preferences file %s: %s", path, exc)
            return self._current
        self._current = TimingPreferences.from_dict(data, base=self._current)
        self._logger.info("Loaded timing preferences from %s", path)
        return self._current

    def update(self, **changes: Any) -> TimingPreferences:
        """Apply ``changes`` (clamped); notify listeners and persist only if something changed."""
        unknown = set(changes) - set(TimingPreferences().to_dict())
        if unknown:
            raise ValueError(f"Unknown preference(s): {', '.join(sorted(unknown))}")
        updated = replace(self._current, **changes).clamped()
        if updated == self._current:
            return self._current
        self._current = updated
        self._logger.info("Timing preferences updated: %s", ", ".join(f"{k}={getattr(updated, k)}" for k in changes))
        self._persist()
        self._notify()
        return updated

    def handle_command(self, payload: dict[str, Any]) -> TimingPreferences:
        """Apply a JSON command payload; unknown keys and mistyped values are ignored."""
        if not isinstance(payload, dict):
            self._logger.debug("Ignoring non-object preferences command: %r", payload)
            return self._current
        candidate = TimingPreferences.from_dict(payload, base=self._current)
        changes = {
            key: value for key, value in candidate.to_dict().items() if getattr(self._current, key) != value
        }
        if not changes:
            return self._current
        return self.update(**changes)

    def _persist(self) -> None:
        path = self._storage_path
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(self._current.to_dict(), indent=2), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            self._logger.warning("Failed to persist preferences to %s: %s", path, exc)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._current)
            except Exception:  # pylint: disable=broad-except
                self._logger.exception("Preferences listener failed")
