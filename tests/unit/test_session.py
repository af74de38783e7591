"""Tests for the remote session manager state machine."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from hometrack.config import SessionConfig
from hometrack.errors import SessionUnavailableError
from hometrack.reliability.session import SessionState, estimate_attempt


async def settle(rounds: int = 50) -> None:
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def hang():
    await asyncio.Event().wait()


class TestEstimateAttempt:
    @pytest.mark.parametrize(
        "elapsed,expected",
        [(0.0, 0), (0.5, 0), (1.0, 1), (4.0, 2), (7.0, 3), (11.0, 4), (15.0, 5), (120.0, 5)],
    )
    def test_boundaries(self, elapsed, expected):
        assert estimate_attempt(elapsed, [1, 3, 7, 11, 15], max_attempts=5) == expected

    def test_capped_by_max_attempts(self):
        assert estimate_attempt(100.0, [1, 3, 7, 11, 15], max_attempts=3) == 3


class TestAcquire:
    """ABSENT -> CONNECTING -> READY."""

    @pytest.mark.asyncio
    async def test_initial_state_is_absent(self, session_factory):
        session = session_factory()
        assert session.state == SessionState.ABSENT
        assert session.handle is None
        assert session.attempt_number == 0

    @pytest.mark.asyncio
    async def test_start_reaches_ready(self, session_factory, remote):
        session = session_factory()
        session.start()
        assert session.is_connecting

        assert await session.wait_ready(timeout=1.0)
        assert session.state == SessionState.READY
        assert session.handle is remote
        remote.health_check.assert_awaited()

    @pytest.mark.asyncio
    async def test_transient_connect_failures_are_retried(self, session_factory, remote):
        connect = AsyncMock(side_effect=[RuntimeError("refused"), RuntimeError("refused"), remote])
        session = session_factory(connect=connect)

        session.start()

        assert await session.wait_ready(timeout=1.0)
        assert connect.await_count == 3

    @pytest.mark.asyncio
    async def test_failed_health_check_is_retried(self, session_factory, remote):
        remote.health_check.side_effect = [RuntimeError("not yet"), "ok"]
        session = session_factory()

        session.start()

        assert await session.wait_ready(timeout=1.0)
        assert remote.health_check.await_count == 2

    @pytest.mark.asyncio
    async def test_start_is_idempotent_while_connecting(self, session_factory, remote):
        connect = AsyncMock(return_value=remote)
        session = session_factory(connect=connect)

        session.start()
        session.start()
        await session.wait_ready(timeout=1.0)

        assert connect.await_count == 1

    @pytest.mark.asyncio
    async def test_listeners_see_transitions(self, session_factory):
        session = session_factory()
        seen = []
        session.add_listener(lambda old, new: seen.append(new))

        session.start()
        await session.wait_ready(timeout=1.0)

        assert seen == [SessionState.CONNECTING, SessionState.READY]


class TestDegrade:
    """CONNECTING -> DEGRADED and recovery."""

    @pytest.mark.asyncio
    async def test_exhausted_attempts_degrade(self, session_factory):
        connect = AsyncMock(side_effect=RuntimeError("unreachable"))
        session = session_factory(connect=connect)

        session.start()
        await settle()

        assert session.state == SessionState.DEGRADED
        assert session.has_error
        assert session.attempt_number == session.max_attempts
        assert session.show_retry_prompt
        assert isinstance(session.last_error, RuntimeError)
        # One initial attempt plus one per retry delay
        assert connect.await_count == 6

    @pytest.mark.asyncio
    async def test_tick_degrades_after_timeout(self, session_factory, clock):
        session = session_factory(connect=hang)
        session.start()
        await settle(5)

        clock.advance(4.0)
        assert session.tick() == SessionState.CONNECTING
        assert session.attempt_number == 2

        clock.advance(9.0)
        assert session.tick() == SessionState.DEGRADED
        assert session.handle is None

    @pytest.mark.asyncio
    async def test_tick_waits_for_grace_period(self, session_factory, clock):
        config = SessionConfig(timeout_seconds=1.0, grace_seconds=5.0, degraded_retry_seconds=None)
        session = session_factory(connect=hang, config=config)
        session.start()

        clock.advance(3.0)
        assert session.tick() == SessionState.CONNECTING

        clock.advance(3.0)
        assert session.tick() == SessionState.DEGRADED

    @pytest.mark.asyncio
    async def test_manual_retry_recovers(self, session_factory, remote, clock):
        connect = AsyncMock(side_effect=[RuntimeError("down")] * 6 + [remote])
        session = session_factory(connect=connect)
        session.start()
        await settle()
        assert session.has_error

        clock.advance(30.0)
        session.manual_retry()
        assert session.is_connecting
        assert session.attempt_number == 0

        assert await session.wait_ready(timeout=1.0)

    @pytest.mark.asyncio
    async def test_automatic_recovery_after_delay(self, session_factory, remote):
        connect = AsyncMock(side_effect=[RuntimeError("down")] * 6 + [remote])
        config = SessionConfig(degraded_retry_seconds=10.0)
        session = session_factory(connect=connect, config=config)

        session.start()

        assert await session.wait_ready(timeout=1.0)
        assert connect.await_count == 7


class TestInvalidateAndStop:
    @pytest.mark.asyncio
    async def test_invalidate_reacquires(self, session_factory, remote):
        connect = AsyncMock(return_value=remote)
        session = session_factory(connect=connect)
        session.start()
        await session.wait_ready(timeout=1.0)

        session.invalidate()
        assert session.handle is None
        assert session.is_connecting

        assert await session.wait_ready(timeout=1.0)
        assert connect.await_count == 2

    @pytest.mark.asyncio
    async def test_invalidate_when_absent_is_noop(self, session_factory):
        session = session_factory()
        session.invalidate()
        assert session.state == SessionState.ABSENT

    @pytest.mark.asyncio
    async def test_stop_releases_handle(self, session_factory):
        session = session_factory()
        session.start()
        await session.wait_ready(timeout=1.0)

        session.stop()

        assert session.state == SessionState.ABSENT
        assert session.handle is None
        with pytest.raises(SessionUnavailableError):
            session.require_handle()

    @pytest.mark.asyncio
    async def test_wait_ready_times_out(self, session_factory):
        session = session_factory(connect=hang)
        session.start()

        assert await session.wait_ready(timeout=0.01) is False
        session.stop()
