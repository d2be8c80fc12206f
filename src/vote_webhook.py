"""aiohttp receiver for vote webhooks.

The response reflects only authorization and payload validation. Once
the vote is stored, a failed role grant is logged and otherwise ignored.
"""
import json
import traceback as tb

from aiohttp import web

from vote_log import debug_log
from vote_store import now_ms
from voter_role import Actuator

WEBHOOK_PATHS = ('/webhook', '/topgg/webhook')


def _clean_id(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value) if value else None
    if isinstance(value, str):
        return value.strip() or None
    return None


def extract_user_id(data):
    """Return the voter id from ``id`` or ``user.id`` (or a bare ``user``), else None."""
    if not isinstance(data, dict):
        return None
    user_id = _clean_id(data.get('id'))
    if user_id is None:
        user = data.get('user')
        # top.gg sends the voter as a bare id string
        user_id = _clean_id(user.get('id') if isinstance(user, dict) else user)
    return user_id


async def handle_vote(request):
    app = request.app
    debug_log(f"Webhook request: {request.method} {request.path}", "INFO")

    secret = app['secret']
    if secret and request.headers.get('Authorization') != secret:
        debug_log("Unauthorized webhook attempt", "WARNING")
        return web.Response(status=401, text="Unauthorized")

    raw_body = await request.read()
    debug_log(f"Raw body ({len(raw_body)} bytes): {raw_body!r}", "DEBUG")
    if not raw_body:
        return web.Response(status=400, text="Empty request body")
    try:
        # json.loads detects the UTF-8/16/32 encoding of raw bytes
        data = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        debug_log(f"Malformed webhook body: {e}", "WARNING")
        return web.Response(status=400, text=f"Invalid JSON: {e}")

    user_id = extract_user_id(data)
    if not user_id:
        debug_log("No user ID found in webhook payload", "WARNING")
        return web.Response(status=400, text="User ID missing")

    try:
        expires_at = app['store'].upsert(user_id, app['clock']())
        debug_log(f"Vote registered for user {user_id}, expires at {expires_at}", "SUCCESS")
    except Exception as e:
        debug_log(f"Error processing vote: {e}", "ERROR")
        tb.print_exc()
        return web.Response(status=500, text="Internal Server Error")

    try:
        result = await app['actuator'].grant(user_id, expires_at=expires_at)
        debug_log(f"Grant for {user_id}: {result.describe()}", "SUCCESS" if result.ok else "WARNING")
    except Exception as e:
        debug_log(f"Grant error for {user_id}: {e}", "ERROR")
        tb.print_exc()

    return web.Response(status=200, text="Vote processed")


async def health_check(request):
    bot = request.app['bot']
    status = "ready" if bot is not None and bot.is_ready() else "not ready"
    try:
        votes = request.app['store'].count()
    except Exception as e:
        debug_log(f"Health check could not count votes: {e}", "WARNING")
        votes = "unknown"
    return web.Response(status=200, text=f"Webhook running! Bot: {status} | Active votes: {votes}")


def create_app(store, actuator: Actuator, secret=None, bot=None, clock=now_ms):
    app = web.Application()
    app['store'] = store
    app['actuator'] = actuator
    app['secret'] = secret
    app['bot'] = bot
    app['clock'] = clock

    for path in WEBHOOK_PATHS:
        app.router.add_post(path, handle_vote)
    app.router.add_get('/health', health_check)
    return app


async def start_webhook_server(app, host="0.0.0.0", port=3000):
    debug_log("Initializing webhook server", "INFO")
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    debug_log(f"Webhook server listening on {host}:{port}", "SUCCESS")
    return runner
