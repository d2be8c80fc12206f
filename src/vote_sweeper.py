import asyncio
import traceback as tb

from discord.ext import tasks

from vote_config import SWEEP_INTERVAL_SECONDS
from vote_log import debug_log
from vote_store import StorageError, now_ms
from voter_role import Actuator


class ExpirySweeper:
    """Revokes the voter role for every vote past its expiry.

    Passes never overlap: a tick that fires while a pass is running is
    dropped, not queued.
    """

    def __init__(self, store, actuator: Actuator, bot=None):
        self.store = store
        self.actuator = actuator
        self.bot = bot
        self._lock = asyncio.Lock()

    @property
    def running(self):
        return self._lock.locked()

    async def run_once(self, now=None):
        """Run one sweep pass. Returns the number of records handled, or
        None when another pass already holds the lock."""
        if self._lock.locked():
            debug_log("Previous sweep still running, skipping this tick", "WARNING")
            return None
        async with self._lock:
            return await self._sweep(now_ms() if now is None else now)

    async def _sweep(self, now):
        processed = 0
        try:
            expired = self.store.list_expired(now)
            if expired:
                debug_log(f"Found {len(expired)} expired vote(s)", "INFO")

            for user_id in expired:
                try:
                    result = await self.actuator.revoke(user_id)
                    debug_log(f"Revoke for {user_id}: {result.describe()}",
                              "SUCCESS" if result.ok else "WARNING")
                except Exception as e:
                    debug_log(f"Error processing expiration for user {user_id}: {e}", "ERROR")
                    tb.print_exc()

                # removed even when the revoke failed; expired votes are never retried
                self.store.delete(user_id)
                processed += 1
        except StorageError as e:
            debug_log(f"Sweep aborted after {processed} record(s), retrying next tick: {e}", "ERROR")
        return processed

    @tasks.loop(seconds=SWEEP_INTERVAL_SECONDS)
    async def sweep_loop(self):
        try:
            await self.run_once()
        except Exception as e:
            debug_log(f"Error in expiration checker: {e}", "ERROR")
            tb.print_exc()

    @sweep_loop.before_loop
    async def before_sweep(self):
        if self.bot is not None:
            await self.bot.wait_until_ready()
        debug_log("Expiry sweeper started", "SUCCESS")

    def start(self):
        if not self.sweep_loop.is_running():
            self.sweep_loop.start()

    def stop(self):
        self.sweep_loop.cancel()
