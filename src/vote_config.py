import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# A vote keeps the role for one week.
VOTE_DURATION_MS = 7 * 24 * 60 * 60 * 1000
SWEEP_INTERVAL_SECONDS = 60

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"
DEFAULT_DB_FILE = "votes.db"


class ConfigError(Exception):
    """Raised when the environment is missing or has malformed settings."""


@dataclass(frozen=True)
class Settings:
    discord_token: str
    role_id: int
    guild_id: Optional[int] = None
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    webhook_secret: Optional[str] = None
    db_file: str = DEFAULT_DB_FILE


def _int_setting(env, name, default=None, required=False):
    raw = (env.get(name) or "").strip()
    if not raw:
        if required:
            raise ConfigError(f"{name} is not set")
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def load_settings(env=None, dotenv=True) -> Settings:
    """Build Settings from the process environment (after reading `.env`)."""
    if env is None:
        if dotenv:
            load_dotenv()
        env = os.environ

    token = (env.get('DISCORD_TOKEN') or "").strip()
    if not token:
        raise ConfigError("DISCORD_TOKEN is not set")

    return Settings(
        discord_token=token,
        role_id=_int_setting(env, 'VOTER_ROLE_ID', required=True),
        guild_id=_int_setting(env, 'GUILD_ID'),
        port=_int_setting(env, 'PORT', default=DEFAULT_PORT),
        host=(env.get('IP') or "").strip() or DEFAULT_HOST,
        # empty string means "no secret", same as unset
        webhook_secret=env.get('WEBHOOK_AUTH') or None,
        db_file=(env.get('VOTES_DB') or "").strip() or DEFAULT_DB_FILE,
    )
