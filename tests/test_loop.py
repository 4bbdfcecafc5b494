"""Tests for loop records and the loop stack."""

import pytest

from quill.runtime.loop import UNKNOWN_COUNT, LoopRecord, LoopStack


class TestLoopRecord:
    def test_start(self):
        record = LoopRecord.start(3, depth=1, parent=None)
        assert record.index == -1
        assert record.iteration == 0
        assert record.remaining == 3
        assert record.first is True
        assert record.last is False

    def test_update_sequence(self):
        record = LoopRecord.start(3, depth=1, parent=None)
        first = record.update(0)
        assert (first.iteration, first.remaining, first.first, first.last) == (1, 2, True, False)
        assert (first.even, first.odd) == (False, True)

        second = record.update(1)
        assert (second.first, second.even, second.odd) == (False, True, False)

        last = record.update(2)
        assert (last.remaining, last.last) == (0, True)

    def test_records_are_immutable(self):
        record = LoopRecord.start(2, depth=1, parent=None)
        record.update(1)
        assert record.index == -1

    def test_unknown_count(self):
        record = LoopRecord.start(UNKNOWN_COUNT, depth=1, parent=None).update(5)
        assert record.remaining == UNKNOWN_COUNT
        assert record.last is False

    def test_single_item_is_first_and_last(self):
        record = LoopRecord.start(1, depth=1, parent=None).update(0)
        assert record.first and record.last


class TestLoopStack:
    def test_nesting(self):
        """Inner records point at the outer slot and are one level deeper."""
        stack = LoopStack()
        stack.push(2)
        stack.update(1)
        inner = stack.push(3)
        assert inner.depth == 2
        assert inner.parent == 0

        view = stack.view()
        assert view.depth == 2
        assert view.parent.iteration == 2
        assert view.parent.parent is None

    def test_view_tracks_updates(self):
        stack = LoopStack()
        stack.push(3)
        view = stack.view()
        stack.update(0)
        assert view.iteration == 1
        stack.update(1)
        assert view.iteration == 2

    def test_pop_restores_outer(self):
        stack = LoopStack()
        stack.push(1)
        stack.push(2)
        stack.pop()
        assert stack.depth() == 1
        assert stack.current().depth == 1

    def test_empty_stack(self):
        stack = LoopStack()
        assert stack.view() is None
        assert stack.pop() is None
        with pytest.raises(IndexError):
            stack.update(0)

    def test_unknown_attribute(self):
        stack = LoopStack()
        stack.push(1)
        with pytest.raises(AttributeError):
            stack.view().nope
