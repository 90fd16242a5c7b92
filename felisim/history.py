"""Bounded undo history of single-instruction state changes."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterator

DEFAULT_CAPACITY = 256


@dataclass(frozen=True)
class PreState:
    """Values an instruction overwrote, so that it can be undone.

    Each field is ``None`` when unchanged. ``gpreg``, ``freg`` and ``mem``
    hold ``(index, previous_value)`` pairs.
    """

    pc: int | None = None
    gpreg: tuple[int, int] | None = None
    freg: tuple[int, float] | None = None
    mem: tuple[int, int] | None = None

    @classmethod
    def for_pc(cls, pc: int) -> PreState:
        """A state recording only the previous program counter."""
        return cls(pc=pc)


class StateHistory:
    """Keeps the last ``capacity`` pre-states with a cursor for stepping back.

    The history always starts with one empty entry, which marks the
    point that cannot be rewound past.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._states: deque[PreState] = deque(maxlen=capacity)
        self._cursor = 0
        self.clear()

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[PreState]:
        return iter(self._states)

    def push(self, state: PreState) -> None:
        """Append a state, dropping the oldest when full, and move to it."""
        self._states.append(state)
        self._cursor = len(self._states) - 1

    def at_latest(self) -> bool:
        """True when the cursor is on the newest entry."""
        return self._cursor == len(self._states) - 1

    def can_rewind(self) -> bool:
        return self._cursor > 0

    def rewind(self) -> PreState:
        """Return the state under the cursor and step the cursor back."""
        if not self.can_rewind():
            raise IndexError("Out of saved history")
        state = self._states[self._cursor]
        self._cursor -= 1
        return state

    def replay(self) -> PreState:
        """Step the cursor forward over an entry already recorded."""
        if self.at_latest():
            raise IndexError("No newer history to replay")
        self._cursor += 1
        return self._states[self._cursor]

    def clear(self) -> None:
        """Forget everything and start again from a single empty entry."""
        self._states.clear()
        self.push(PreState())