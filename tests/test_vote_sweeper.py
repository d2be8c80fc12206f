"""Tests for the expiry sweep."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

from vote_store import StorageError
from vote_sweeper import ExpirySweeper
from voter_role import ActionResult, Outcome

from conftest import NOW, WEEK_MS, FakeActuator

AFTER_EXPIRY = NOW + WEEK_MS + 1


class TestRunOnce:
    async def test_revokes_and_deletes_expired(self, store, actuator):
        store.upsert("u1", NOW)
        store.upsert("u2", NOW)
        sweeper = ExpirySweeper(store, actuator)

        assert await sweeper.run_once(now=AFTER_EXPIRY) == 2
        assert sorted(actuator.revoked) == ["u1", "u2"]
        assert store.count() == 0

    async def test_leaves_active_votes_alone(self, store, actuator):
        store.upsert("old", NOW)
        store.upsert("fresh", AFTER_EXPIRY)
        sweeper = ExpirySweeper(store, actuator)

        assert await sweeper.run_once(now=AFTER_EXPIRY) == 1
        assert actuator.revoked == ["old"]
        assert store.get_expiry("fresh") is not None

    async def test_nothing_expired(self, store, actuator):
        store.upsert("u1", NOW)
        sweeper = ExpirySweeper(store, actuator)
        assert await sweeper.run_once(now=NOW) == 0
        assert actuator.revoked == []

    async def test_record_deleted_whatever_the_revoke_outcome(self, store):
        actuator = FakeActuator(revoke_results={
            "gone": ActionResult(Outcome.NOT_FOUND, detail="not a member"),
            "broken": ActionResult(Outcome.ERROR, detail="bot lacks MANAGE_ROLES"),
            "boom": RuntimeError("gateway exploded"),
        })
        for user_id in ("ok", "gone", "broken", "boom"):
            store.upsert(user_id, NOW)
        sweeper = ExpirySweeper(store, actuator)

        assert await sweeper.run_once(now=AFTER_EXPIRY) == 4
        assert sorted(actuator.revoked) == ["boom", "broken", "gone", "ok"]
        assert store.count() == 0

    async def test_storage_failure_aborts_pass(self, actuator):
        store = MagicMock()
        store.list_expired.side_effect = StorageError("disk I/O error")
        sweeper = ExpirySweeper(store, actuator)

        assert await sweeper.run_once(now=AFTER_EXPIRY) == 0
        assert actuator.revoked == []
        assert not sweeper.running

    async def test_delete_failure_stops_batch(self, actuator):
        store = MagicMock()
        store.list_expired.return_value = ["u1", "u2"]
        store.delete.side_effect = StorageError("database is locked")
        sweeper = ExpirySweeper(store, actuator)

        assert await sweeper.run_once(now=AFTER_EXPIRY) == 0
        assert actuator.revoked == ["u1"]


class TestReentrancy:
    async def test_overlapping_tick_is_skipped(self, store):
        started = asyncio.Event()
        release = asyncio.Event()

        class SlowActuator(FakeActuator):
            async def revoke(self, user_id):
                self.revoked.append(user_id)
                started.set()
                await release.wait()
                return ActionResult(Outcome.SUCCESS)

        actuator = SlowActuator()
        store.upsert("u1", NOW)
        sweeper = ExpirySweeper(store, actuator)

        first = asyncio.create_task(sweeper.run_once(now=AFTER_EXPIRY))
        await started.wait()
        assert sweeper.running
        assert await sweeper.run_once(now=AFTER_EXPIRY) is None

        release.set()
        assert await first == 1
        assert actuator.revoked == ["u1"]
        assert store.count() == 0
        assert not sweeper.running

    async def test_runs_again_after_previous_pass(self, store, actuator):
        sweeper = ExpirySweeper(store, actuator)
        assert await sweeper.run_once(now=AFTER_EXPIRY) == 0
        store.upsert("u1", NOW)
        assert await sweeper.run_once(now=AFTER_EXPIRY) == 1


class TestLoop:
    def test_ticks_every_minute(self, store, actuator):
        sweeper = ExpirySweeper(store, actuator)
        assert sweeper.sweep_loop.seconds == 60
        assert not sweeper.sweep_loop.is_running()

    async def test_failed_pass_does_not_escape_loop(self, actuator):
        store = MagicMock()
        store.list_expired.side_effect = RuntimeError("unexpected")
        sweeper = ExpirySweeper(store, actuator)

        await sweeper.sweep_loop.coro(sweeper)

        assert not sweeper.running
        store.list_expired.side_effect = None
        store.list_expired.return_value = []
        assert await sweeper.run_once(now=AFTER_EXPIRY) == 0

    async def test_waits_for_bot_ready(self, store, actuator):
        bot = MagicMock()
        bot.wait_until_ready = AsyncMock()
        sweeper = ExpirySweeper(store, actuator, bot=bot)

        await sweeper.before_sweep()

        bot.wait_until_ready.assert_awaited_once()
