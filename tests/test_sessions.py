"""Test session bookkeeping and progress pings."""

import asyncio

import pytest

from autoresearch.errors import SessionBusyError
from autoresearch.sessions import SessionStore, run_with_progress_pings


class TestSessionStore:

    def test_get_creates_session_once(self):
        store = SessionStore()
        first = store.get("42", username="ada")
        second = store.get("42")

        assert first is second
        assert second.username == "ada"
        assert len(store) == 1

    def test_only_one_active_run_per_user(self):
        """Test that a second run for the same user is rejected while one is active."""
        store = SessionStore()
        store.begin("42", "Renewable Energy")

        with pytest.raises(SessionBusyError):
            store.begin("42", "Quantum Computing")

        store.begin("7", "Quantum Computing")
        assert store.get("7").active_topic == "Quantum Computing"

    def test_finish_records_successful_topics(self):
        store = SessionStore()
        store.begin("42", "Renewable Energy")
        store.finish("42")
        store.begin("42", "Failed Topic")
        store.finish("42", success=False)

        assert store.history("42") == ["Renewable Energy"]
        assert store.get("42").active_topic is None

    def test_history_unknown_user(self):
        assert SessionStore().history("nobody") == []

    def test_clear(self):
        store = SessionStore()
        store.get("42")
        store.clear("42")
        assert len(store) == 0


class TestProgressPings:

    @pytest.mark.asyncio
    async def test_pings_while_waiting(self):
        pings = []

        async def work():
            await asyncio.sleep(0.05)
            return "done"

        result = await run_with_progress_pings(work(), pings.append, interval=0.01)

        assert result == "done"
        assert pings[:2] == [1, 2]

    @pytest.mark.asyncio
    async def test_pings_stop_after_failure(self):
        pings = []

        async def work():
            await asyncio.sleep(0.03)
            raise ValueError("boom")

        with pytest.raises(ValueError):
            await run_with_progress_pings(work(), pings.append, interval=0.01)

        count = len(pings)
        await asyncio.sleep(0.05)
        assert len(pings) == count

    @pytest.mark.asyncio
    async def test_async_ping_and_ping_errors(self):
        calls = []

        async def ping(n):
            calls.append(n)
            if n == 1:
                raise RuntimeError("send failed")

        async def work():
            await asyncio.sleep(0.05)
            return 3

        assert await run_with_progress_pings(work(), ping, interval=0.01) == 3
        assert len(calls) >= 2
