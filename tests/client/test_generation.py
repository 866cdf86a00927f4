"""Tests for cancellation scopes and sync generations."""

from __future__ import annotations

import threading

from confsync.client.sync.generation import CancelReason, CancelScope, SyncGeneration


class TestCancelScope:
    """Tests for CancelScope."""

    def test_cancel_once(self) -> None:
        """Only the first cancel should take effect."""
        scope = CancelScope()
        assert not scope.cancelled
        assert scope.reason is None

        assert scope.cancel(CancelReason.SHUTDOWN)
        assert not scope.cancel(CancelReason.SUPERSEDED)

        assert scope.cancelled
        assert scope.reason is CancelReason.SHUTDOWN

    def test_callbacks_run_on_cancel(self) -> None:
        scope = CancelScope()
        calls: list[str] = []
        scope.on_cancel(lambda: calls.append("a"))
        scope.on_cancel(lambda: calls.append("b"))

        scope.cancel()

        assert calls == ["a", "b"]

    def test_callback_after_cancel_runs_immediately(self) -> None:
        scope = CancelScope()
        scope.cancel()
        calls: list[str] = []

        scope.on_cancel(lambda: calls.append("late"))

        assert calls == ["late"]

    def test_unregister(self) -> None:
        scope = CancelScope()
        calls: list[str] = []
        unregister = scope.on_cancel(lambda: calls.append("x"))

        unregister()
        scope.cancel()

        assert calls == []

    def test_failing_callback_does_not_stop_others(self) -> None:
        scope = CancelScope()
        calls: list[str] = []

        def broken() -> None:
            raise RuntimeError("boom")

        scope.on_cancel(broken)
        scope.on_cancel(lambda: calls.append("after"))

        assert scope.cancel()
        assert calls == ["after"]

    def test_child_follows_parent(self) -> None:
        """Cancelling the parent cancels the child with the same reason."""
        parent = CancelScope()
        child = parent.child()

        parent.cancel(CancelReason.SHUTDOWN)

        assert child.cancelled
        assert child.reason is CancelReason.SHUTDOWN

    def test_child_does_not_affect_parent(self) -> None:
        parent = CancelScope()
        child = parent.child()

        child.cancel()

        assert child.cancelled
        assert not parent.cancelled

    def test_child_of_cancelled_parent(self) -> None:
        parent = CancelScope()
        parent.cancel()

        assert parent.child(timeout=10.0).cancelled

    def test_closed_child_detached(self) -> None:
        """A closed child should no longer follow its parent."""
        parent = CancelScope()
        child = parent.child()
        child.close()

        parent.cancel()

        assert not child.cancelled

    def test_timeout(self) -> None:
        """A deadline cancels the scope with TIMEOUT."""
        scope = CancelScope(timeout=0.05)

        assert scope.wait(timeout=5.0)
        assert scope.reason is CancelReason.TIMEOUT
        scope.close()

    def test_close_stops_timer(self) -> None:
        scope = CancelScope(timeout=0.05)
        scope.close()

        assert not scope.wait(timeout=0.2)

    def test_wait_returns_on_cancel_from_other_thread(self) -> None:
        scope = CancelScope()
        timer = threading.Timer(0.05, scope.cancel)
        timer.start()

        assert scope.wait(timeout=5.0)
        timer.join()


class TestSyncGeneration:
    """Tests for SyncGeneration."""

    def test_number_and_repr(self) -> None:
        generation = SyncGeneration(7)
        assert generation.number == 7
        assert repr(generation) == "SyncGeneration(7, active)"

        generation.cancel(CancelReason.SUPERSEDED)
        assert repr(generation) == "SyncGeneration(7, cancelled:superseded)"

    def test_download_scopes_cancelled_with_generation(self) -> None:
        generation = SyncGeneration(1)
        scopes = [generation.child(), generation.child(timeout=60.0)]

        generation.cancel()

        assert all(scope.cancelled for scope in scopes)
        for scope in scopes:
            scope.close()
