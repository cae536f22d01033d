"""
Tests for resource tracking and aggregated cleanup
"""

import threading
from unittest.mock import Mock

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from diagnostics.error_codes import ErrorCode
from diagnostics.exceptions import ErrorKind, TxPilotError, get_suppressed
from infrastructure.resource_tracker import ResourceTracker, close_resources


class Child:
    """Closeable child that records its close"""

    def __init__(self, name, log, error=None, on_close=None):
        self.name = name
        self.log = log
        self.error = error
        self.on_close = on_close
        self.close_count = 0

    def close(self):
        self.close_count += 1
        self.log.append(self.name)
        if self.on_close is not None:
            self.on_close()
        if self.error is not None:
            raise self.error


class TestResourceTracker:
    """Test close_all ordering and error collection"""

    @pytest.mark.parametrize("n,k", [(5, 0), (5, 2), (5, 5), (1, 1)])
    def test_closes_all_children_and_reports_failures(self, n, k):
        log = []
        tracker = ResourceTracker()
        children = [Child(f"c{i}", log, error=RuntimeError(f"c{i}") if i < k else None) for i in range(n)]
        for child in children:
            tracker.add(child)

        errors = tracker.close_all()

        assert len(errors) == k
        assert [str(e) for e in errors] == [f"c{i}" for i in range(k)]
        assert all(child.close_count == 1 for child in children)
        assert tracker.is_empty()

    def test_closes_in_insertion_order(self):
        log = []
        tracker = ResourceTracker()
        for name in ["a", "b", "c"]:
            tracker.add(Child(name, log))

        tracker.close_all()

        assert log == ["a", "b", "c"]

    def test_children_added_during_close_are_closed(self):
        """Test that a child registered by another child's close is closed in the same pass"""
        log = []
        tracker = ResourceTracker()
        late = Child("late", log)
        tracker.add(Child("first", log, on_close=lambda: tracker.add(late)))
        tracker.add(Child("second", log))

        errors = tracker.close_all()

        assert errors == []
        assert log == ["first", "second", "late"]
        assert tracker.is_empty()

    def test_remove_is_idempotent(self):
        log = []
        tracker = ResourceTracker()
        child = Child("a", log)
        tracker.add(child)

        tracker.remove(child)
        tracker.remove(child)

        assert len(tracker) == 0
        assert tracker.close_all() == []
        assert log == []

    def test_child_removing_itself_during_close(self):
        """Test that a child calling remove(self) from close is harmless"""
        log = []
        tracker = ResourceTracker()
        child = Child("a", log)
        child.on_close = lambda: tracker.remove(child)
        tracker.add(child)

        assert tracker.close_all() == []
        assert log == ["a"]

    def test_concurrent_add_and_remove(self):
        log = []
        tracker = ResourceTracker()
        children = [Child(str(i), log) for i in range(200)]

        def worker(items):
            for item in items:
                tracker.add(item)
            for item in items[::2]:
                tracker.remove(item)

        threads = [threading.Thread(target=worker, args=(children[i::4],)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(tracker) == 100
        tracker.close_all()
        assert tracker.is_empty()


class TestCloseResources:
    """Test owner close with aggregated child errors"""

    def test_own_close_error_is_primary(self):
        log = []
        tracker = ResourceTracker()
        tracker.add(Child("a", log, error=RuntimeError("child a")))
        tracker.add(Child("b", log, error=RuntimeError("child b")))

        def own_close():
            log.append("own")
            raise OSError("own close")

        with pytest.raises(OSError, match="own close") as exc_info:
            close_resources(tracker, own_close, ErrorCode.TX_CHILD_CLOSE_ERROR)

        assert [str(e) for e in get_suppressed(exc_info.value)] == ["child a", "child b"]
        assert log == ["a", "b", "own"]

    def test_child_errors_aggregated_when_own_close_succeeds(self):
        log = []
        tracker = ResourceTracker()
        tracker.add(Child("a", log, error=RuntimeError("child a")))
        tracker.add(Child("b", log, error=RuntimeError("child b")))
        tracker.add(Child("c", log))

        with pytest.raises(TxPilotError) as exc_info:
            close_resources(tracker, lambda: log.append("own"), ErrorCode.TX_CHILD_CLOSE_ERROR)

        error = exc_info.value
        assert error.kind == ErrorKind.AGGREGATED_CLOSE
        assert error.code == ErrorCode.TX_CHILD_CLOSE_ERROR
        assert str(error.cause) == "child a"
        assert [str(e) for e in error.suppressed] == ["child b"]
        assert log == ["a", "b", "c", "own"]

    def test_no_error_when_everything_closes(self):
        log = []
        tracker = ResourceTracker()
        tracker.add(Child("a", log))

        close_resources(tracker, None, ErrorCode.TX_CHILD_CLOSE_ERROR)

        assert log == ["a"]

    def test_mock_children(self):
        good = Mock()
        bad = Mock()
        bad.close.side_effect = RuntimeError("bad child")
        tracker = ResourceTracker()
        tracker.add(bad)
        tracker.add(good)

        with pytest.raises(TxPilotError) as exc_info:
            close_resources(tracker, None, ErrorCode.SESSION_CHILD_CLOSE_ERROR)

        assert exc_info.value.code == ErrorCode.SESSION_CHILD_CLOSE_ERROR
        bad.close.assert_called_once_with()
        good.close.assert_called_once_with()
