from vote_bot import VoteRoleBot
from vote_config import ConfigError, load_settings
from vote_log import debug_log


def main():
    try:
        settings = load_settings()
    except ConfigError as e:
        debug_log(f"Configuration error: {e}", "ERROR")
        raise SystemExit(1)

    bot = VoteRoleBot(settings)
    bot.run(settings.discord_token)


if __name__ == "__main__":
    main()
