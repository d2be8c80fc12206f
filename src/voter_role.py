"""Grants and revokes the voter role through discord.py.

Lookups go through the client cache first and fall back to REST calls,
so a stale cache only costs an extra request. Nothing here raises for a
Discord-side failure: every call returns an ``ActionResult``.
"""
import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

import discord

from vote_log import debug_log


class Outcome(enum.Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class ActionResult:
    """Outcome of the role change, reported apart from the DM notice."""
    outcome: Outcome
    notice_sent: bool = False
    detail: Optional[str] = None

    @property
    def ok(self):
        return self.outcome is Outcome.SUCCESS

    def describe(self):
        text = self.outcome.value
        if self.detail:
            text += f" ({self.detail})"
        if self.outcome is Outcome.SUCCESS:
            text += ", notice sent" if self.notice_sent else ", notice not sent"
        return text


class Actuator(Protocol):
    async def grant(self, user_id: str, expires_at: Optional[int] = None) -> ActionResult: ...

    async def revoke(self, user_id: str) -> ActionResult: ...


def get_discord_timestamp(dt, style='f'):
    if not dt:
        return "Unknown"
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return f"<t:{int(dt.timestamp())}:{style}>"


def grant_notice(expires_at=None):
    embed = discord.Embed(
        title="Thanks for voting!",
        description="You've got the **Server Voter** role for the next week. "
                    "Vote again before it runs out to refresh the timer.",
        color=discord.Color.green(),
        timestamp=datetime.now(timezone.utc))
    if expires_at:
        expiry = datetime.fromtimestamp(expires_at / 1000, tz=timezone.utc)
        embed.add_field(
            name="Role expires",
            value=f"{get_discord_timestamp(expiry, 'R')} ({get_discord_timestamp(expiry, 'F')})",
            inline=False)
    embed.set_footer(text="Thanks for supporting us!")
    return embed


def revoke_notice():
    embed = discord.Embed(
        title="Your voter role expired",
        description="It's been a week since your last vote, so the role has been removed. "
                    "Just vote again and it'll be re-added straight away.",
        color=discord.Color.orange(),
        timestamp=datetime.now(timezone.utc))
    embed.set_footer(text="Thanks for supporting us!")
    return embed


class RoleActuator:
    def __init__(self, bot, role_id, guild_id=None):
        self.bot = bot
        self.role_id = role_id
        self.guild_id = guild_id

    async def find_guild(self):
        if self.guild_id:
            guild = self.bot.get_guild(self.guild_id)
            if guild is None:
                try:
                    guild = await self.bot.fetch_guild(self.guild_id)
                except discord.HTTPException as e:
                    debug_log(f"Failed to fetch guild {self.guild_id}: {e}", "ERROR")
                    return None
            return guild

        # no guild configured: use whichever cached guild owns the role
        for guild in self.bot.guilds:
            if guild.get_role(self.role_id) is not None:
                return guild
        return None

    async def _resolve(self, user_id):
        """Return ``((guild, member, role), None)`` or ``(None, failure)``."""
        guild = await self.find_guild()
        if guild is None:
            return None, ActionResult(Outcome.ERROR, detail=f"no guild with role {self.role_id}")

        role = guild.get_role(self.role_id)
        if role is None:
            return None, ActionResult(Outcome.ERROR, detail=f"role {self.role_id} not in guild {guild.id}")

        try:
            member_id = int(user_id)
        except (TypeError, ValueError):
            return None, ActionResult(Outcome.NOT_FOUND, detail="not a Discord user id")

        member = guild.get_member(member_id)
        if member is None:
            try:
                member = await guild.fetch_member(member_id)
            except discord.NotFound:
                return None, ActionResult(Outcome.NOT_FOUND, detail=f"not a member of {guild.name}")
            except discord.HTTPException as e:
                return None, ActionResult(Outcome.ERROR, detail=f"fetch member failed: {e}")

        return (guild, member, role), None

    def _check_hierarchy(self, guild, role):
        me = guild.me
        # guilds fetched over REST carry no member cache; let Discord reject instead
        if me is None:
            return None
        if not me.guild_permissions.manage_roles:
            return ActionResult(Outcome.ERROR, detail="bot lacks MANAGE_ROLES")
        if role.position >= me.top_role.position:
            return ActionResult(Outcome.ERROR, detail="voter role is above bot role in hierarchy")
        return None

    async def _notify(self, member, embed):
        try:
            await member.send(embed=embed)
            return True
        except discord.Forbidden:
            debug_log(f"DM blocked by {member}", "WARNING")
        except discord.HTTPException as e:
            debug_log(f"DM error for {member}: {e}", "WARNING")
        return False

    async def grant(self, user_id, expires_at=None):
        target, failure = await self._resolve(user_id)
        if failure:
            return failure
        guild, member, role = target

        if role not in member.roles:
            failure = self._check_hierarchy(guild, role)
            if failure:
                return failure
            try:
                await member.add_roles(role, reason="Voted - role lasts 7 days")
            except discord.HTTPException as e:
                return ActionResult(Outcome.ERROR, detail=f"add role failed: {e}")
            debug_log(f"Added voter role to {member} in {guild.name}", "SUCCESS")

        notice_sent = await self._notify(member, grant_notice(expires_at))
        return ActionResult(Outcome.SUCCESS, notice_sent=notice_sent)

    async def revoke(self, user_id):
        target, failure = await self._resolve(user_id)
        if failure:
            return failure
        guild, member, role = target

        if role not in member.roles:
            return ActionResult(Outcome.SUCCESS, detail="role not held")

        failure = self._check_hierarchy(guild, role)
        if failure:
            return failure
        try:
            await member.remove_roles(role, reason="Voter role expired")
        except discord.HTTPException as e:
            return ActionResult(Outcome.ERROR, detail=f"remove role failed: {e}")
        debug_log(f"Removed voter role from {member} in {guild.name}", "SUCCESS")

        notice_sent = await self._notify(member, revoke_notice())
        return ActionResult(Outcome.SUCCESS, notice_sent=notice_sent)
