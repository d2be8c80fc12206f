import traceback as tb

import discord
from discord.ext import commands

from vote_log import debug_log
from vote_store import VoteStore, now_ms
from vote_sweeper import ExpirySweeper
from vote_webhook import create_app, start_webhook_server
from voter_role import RoleActuator


class VoteRoleBot(commands.Bot):
    def __init__(self, settings, store=None):
        intents = discord.Intents.default()
        intents.members = True
        intents.dm_messages = True
        super().__init__(command_prefix="!", intents=intents, help_command=None)
        self.settings = settings
        self.store = store if store is not None else VoteStore(settings.db_file)
        self.actuator = RoleActuator(self, settings.role_id, settings.guild_id)
        self.sweeper = ExpirySweeper(self.store, self.actuator, bot=self)
        self.web_runner = None

    async def setup_hook(self):
        app = create_app(self.store, self.actuator, secret=self.settings.webhook_secret, bot=self)
        self.web_runner = await start_webhook_server(app, self.settings.host, self.settings.port)
        self.sweeper.start()

    async def on_ready(self):
        debug_log(f"Logged in as {self.user} | Connected to {len(self.guilds)} servers", "SUCCESS")

    async def on_member_join(self, member):
        if member.guild.get_role(self.settings.role_id) is None:
            return
        try:
            expires_at = self.store.get_expiry(member.id)
            if expires_at is None or expires_at <= now_ms():
                return
            debug_log(f"{member} joined with an active vote, granting voter role", "INFO")
            result = await self.actuator.grant(member.id, expires_at=expires_at)
            debug_log(f"Grant on join for {member.id}: {result.describe()}",
                      "SUCCESS" if result.ok else "WARNING")
        except Exception as e:
            debug_log(f"check on join failed for {member.id}: {e}", "ERROR")
            tb.print_exc()

    async def close(self):
        self.sweeper.stop()
        if self.web_runner is not None:
            await self.web_runner.cleanup()
        await super().close()
