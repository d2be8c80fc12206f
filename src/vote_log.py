import os
from datetime import datetime, timezone

LEVEL_ICONS = {"INFO": "ℹ️", "SUCCESS": "✅", "ERROR": "❌", "WARNING": "⚠️", "DEBUG": "🔍"}


def debug_enabled():
    return os.getenv('DEBUG', '').strip().lower() in ("1", "true", "yes", "on")


def debug_log(message, level="INFO"):
    if level == "DEBUG" and not debug_enabled():
        return
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
    prefix = LEVEL_ICONS.get(level, "📝")
    print(f"[{timestamp}] {prefix} {message}", flush=True)
