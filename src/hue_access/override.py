from __future__ import annotations

from dataclasses import dataclass


@dataclass
class _TrackedState:
    manually_overridden: bool = False
    just_turned_on: bool = False
    is_off: bool = False
    enforce_schedule: bool = False


_DEFAULT_STATE = _TrackedState()


class ManualOverrideTracker:
    """Remembers per light/group whether the last change came from outside the scheduler."""

    def __init__(self) -> None:
        self._states: dict[str, _TrackedState] = {}

    def _state(self, rid: str) -> _TrackedState:
        state = self._states.get(rid)
        if state is None:
            state = self._states[rid] = _TrackedState()
        return state

    def _peek(self, rid: str) -> _TrackedState:
        return self._states.get(rid, _DEFAULT_STATE)

    def on_manually_overridden(self, rid: str) -> None:
        state = self._state(rid)
        state.manually_overridden = True
        state.just_turned_on = False
        state.enforce_schedule = False

    def on_light_turned_on(self, rid: str) -> None:
        state = self._state(rid)
        # Turning an overridden light back on hands control back to the scheduler.
        state.enforce_schedule = state.manually_overridden
        state.manually_overridden = False
        state.is_off = False
        state.just_turned_on = True

    def on_light_off(self, rid: str) -> None:
        state = self._state(rid)
        state.is_off = True
        state.just_turned_on = False
        state.enforce_schedule = False

    def on_automatically_assigned(self, rid: str) -> None:
        state = self._state(rid)
        state.manually_overridden = False
        state.just_turned_on = False
        state.enforce_schedule = False

    def is_manually_overridden(self, rid: str) -> bool:
        return self._peek(rid).manually_overridden

    def is_off(self, rid: str) -> bool:
        return self._peek(rid).is_off

    def was_just_turned_on(self, rid: str) -> bool:
        return self._peek(rid).just_turned_on

    def should_enforce_schedule(self, rid: str) -> bool:
        return self._peek(rid).enforce_schedule
