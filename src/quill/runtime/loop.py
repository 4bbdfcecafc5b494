"""Loop metadata for nested iteration (`$loop` inside templates)."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import List, Optional

UNKNOWN_COUNT = -1


@dataclass(frozen=True)
class LoopRecord:
    """Immutable snapshot of one loop's state.

    A new record replaces the old one on every iteration. `parent` is the
    slot of the enclosing loop's record in the owning LoopStack, not a
    reference to the record itself.
    """

    index: int = -1
    iteration: int = 0
    count: int = UNKNOWN_COUNT
    remaining: int = UNKNOWN_COUNT
    first: bool = True
    last: bool = False
    even: bool = False
    odd: bool = True
    depth: int = 1
    parent: Optional[int] = None

    @classmethod
    def start(cls, count: int, depth: int, parent: Optional[int]) -> "LoopRecord":
        return cls(
            count=count,
            remaining=count,
            last=count == 1,
            depth=depth,
            parent=parent,
        )

    def update(self, index: int) -> "LoopRecord":
        even = (index + 1) % 2 == 0
        known = self.count >= 0
        return replace(
            self,
            index=index,
            iteration=index + 1,
            remaining=self.count - index - 1 if known else UNKNOWN_COUNT,
            first=index == 0,
            last=known and index == self.count - 1,
            even=even,
            odd=not even,
        )


class LoopStack:
    """Arena of active loop records, innermost last."""

    def __init__(self) -> None:
        self._records: List[LoopRecord] = []

    def push(self, count: int = UNKNOWN_COUNT) -> LoopRecord:
        parent = len(self._records) - 1 if self._records else None
        record = LoopRecord.start(count, depth=len(self._records) + 1, parent=parent)
        self._records.append(record)
        return record

    def update(self, index: int) -> LoopRecord:
        if not self._records:
            raise IndexError("update on empty loop stack")
        record = self._records[-1].update(index)
        self._records[-1] = record
        return record

    def pop(self) -> Optional[LoopRecord]:
        if not self._records:
            return None
        return self._records.pop()

    def current(self) -> Optional[LoopRecord]:
        return self._records[-1] if self._records else None

    def get(self, slot: int) -> LoopRecord:
        return self._records[slot]

    def depth(self) -> int:
        return len(self._records)

    def view(self) -> Optional["LoopView"]:
        if not self._records:
            return None
        return LoopView(self, len(self._records) - 1)


_FIELDS = frozenset(f.name for f in fields(LoopRecord)) - {"parent"}


class LoopView:
    """Template-facing view of a loop slot.

    Attributes read through to the slot's current record; `parent` resolves
    to a view of the enclosing loop.
    """

    __slots__ = ("_stack", "_slot")

    def __init__(self, stack: LoopStack, slot: int):
        self._stack = stack
        self._slot = slot

    @property
    def record(self) -> LoopRecord:
        return self._stack.get(self._slot)

    @property
    def parent(self) -> Optional["LoopView"]:
        slot = self.record.parent
        return None if slot is None else LoopView(self._stack, slot)

    def __getattr__(self, name: str):
        if name in _FIELDS:
            return getattr(self.record, name)
        raise AttributeError(name)

    def __repr__(self) -> str:
        return f"LoopView({self.record!r})"
