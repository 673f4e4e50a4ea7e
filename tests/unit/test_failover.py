"""
Unit tests for failover notification and re-authentication.

Tests the single-subscriber notifier and the re-auth in-progress guard.
"""

import asyncio

import pytest

from meshlink.selection.failover import FailoverNotifier, ReauthCoordinator


class TestFailoverNotifier:
    """Tests for FailoverNotifier."""

    def test_fires_once_per_change(self) -> None:
        """Test a change from a to b is delivered exactly once."""
        notifier = FailoverNotifier()
        calls: list[tuple[str | None, str]] = []
        notifier.on_active_endpoint_change(lambda prev, new: calls.append((prev, new)))

        assert notifier.notify("a", "b") is True

        assert calls == [("a", "b")]

    def test_no_op_reselection_not_delivered(self) -> None:
        """Test a reselection resolving to the same id fires nothing."""
        notifier = FailoverNotifier()
        calls: list[tuple[str | None, str]] = []
        notifier.on_active_endpoint_change(lambda prev, new: calls.append((prev, new)))

        assert notifier.notify("a", "a") is False

        assert calls == []

    def test_initial_selection_not_delivered(self) -> None:
        """Test the first selection is not a change."""
        notifier = FailoverNotifier()
        calls: list[tuple[str | None, str]] = []
        notifier.on_active_endpoint_change(lambda prev, new: calls.append((prev, new)))

        notifier.notify(None, "a")

        assert calls == []

    def test_new_subscriber_replaces_previous(self) -> None:
        """Test only the most recent subscriber is called."""
        notifier = FailoverNotifier()
        first: list[str] = []
        second: list[str] = []

        notifier.on_active_endpoint_change(lambda prev, new: first.append(new))
        notifier.on_active_endpoint_change(lambda prev, new: second.append(new))
        notifier.notify("a", "b")

        assert first == []
        assert second == ["b"]

    def test_unsubscribe(self) -> None:
        """Test registering None clears the subscriber."""
        notifier = FailoverNotifier()
        notifier.on_active_endpoint_change(lambda prev, new: None)
        notifier.on_active_endpoint_change(None)

        assert notifier.has_subscriber is False
        assert notifier.notify("a", "b") is False

    def test_subscriber_error_contained(self) -> None:
        """Test a failing callback does not propagate."""
        notifier = FailoverNotifier()

        def broken(prev: str | None, new: str) -> None:
            raise RuntimeError("boom")

        notifier.on_active_endpoint_change(broken)

        assert notifier.notify("a", "b") is True
        assert notifier.fired_count == 1


class TestReauthCoordinator:
    """Tests for ReauthCoordinator."""

    @pytest.fixture
    def auth_log(self) -> list[str]:
        """Ordered record of auth side effects."""
        return []

    def make_coordinator(
        self,
        auth_log: list[str],
        can_reauth: bool = True,
        login_gate: asyncio.Event | None = None,
        login_error: Exception | None = None,
    ) -> ReauthCoordinator:
        async def login() -> None:
            auth_log.append("login")
            if login_gate is not None:
                await login_gate.wait()
            if login_error is not None:
                raise login_error

        return ReauthCoordinator(
            can_reauth=lambda: can_reauth,
            disconnect=lambda: auth_log.append("disconnect"),
            login=login,
            settle_delay=0.0,
        )

    @pytest.mark.asyncio
    async def test_disconnects_then_logs_in(self, auth_log: list[str]) -> None:
        """Test a change drops the old session and logs in again."""
        coordinator = self.make_coordinator(auth_log)

        coordinator.handle_change("a", "b")
        assert coordinator.in_progress is True

        await coordinator.wait()

        assert auth_log == ["disconnect", "login"]
        assert coordinator.in_progress is False

    @pytest.mark.asyncio
    async def test_change_during_reauth_ignored(self, auth_log: list[str]) -> None:
        """Test a failover while a login is in flight does not start another."""
        gate = asyncio.Event()
        coordinator = self.make_coordinator(auth_log, login_gate=gate)

        coordinator.handle_change("a", "b")
        await asyncio.sleep(0.01)
        coordinator.handle_change("b", "c")
        coordinator.handle_change("c", "a")

        gate.set()
        await coordinator.wait()

        assert auth_log == ["disconnect", "login"]
        assert coordinator.suppressed_count == 2

    @pytest.mark.asyncio
    async def test_guard_cleared_after_failed_login(self, auth_log: list[str]) -> None:
        """Test the flag clears even when login raises."""
        coordinator = self.make_coordinator(auth_log, login_error=RuntimeError("rejected"))

        coordinator.handle_change("a", "b")
        await coordinator.wait()

        assert coordinator.in_progress is False

        coordinator.handle_change("b", "c")
        await coordinator.wait()
        assert auth_log.count("login") == 2

    @pytest.mark.asyncio
    async def test_unauthenticated_user_not_reauthed(self, auth_log: list[str]) -> None:
        """Test nothing happens without a session to renew."""
        coordinator = self.make_coordinator(auth_log, can_reauth=False)

        coordinator.handle_change("a", "b")
        await coordinator.wait()

        assert auth_log == []
        assert coordinator.in_progress is False

    @pytest.mark.asyncio
    async def test_attach_to_notifier(self, auth_log: list[str]) -> None:
        """Test the coordinator as the notifier's subscriber."""
        notifier = FailoverNotifier()
        coordinator = self.make_coordinator(auth_log)
        coordinator.attach(notifier)

        notifier.notify("a", "b")
        await coordinator.wait()

        assert auth_log == ["disconnect", "login"]

        coordinator.detach(notifier)
        assert notifier.has_subscriber is False

    @pytest.mark.asyncio
    async def test_close_cancels_login(self, auth_log: list[str]) -> None:
        """Test close cancels an in-flight login and clears the flag."""
        coordinator = self.make_coordinator(auth_log, login_gate=asyncio.Event())

        coordinator.handle_change("a", "b")
        await asyncio.sleep(0.01)
        await coordinator.close()

        assert coordinator.in_progress is False
