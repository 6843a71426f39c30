"""
Command-line entry point.

    python -m gator register <name>
    python -m gator login <name>
    python -m gator users
    python -m gator reset
    python -m gator addfeed <name> <url>
    python -m gator feeds
    python -m gator browse [limit]
    python -m gator agg <interval>      # e.g. 30s, 1m, 1h30m

Commands are looked up by name in a ``Commands`` table; handlers that need a
current user are wrapped with ``logged_in``.
"""

import asyncio
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import wraps

from sqlalchemy.exc import SQLAlchemyError

from gator.config import Settings, UserConfig, settings as default_settings
from gator.context import AppContext
from gator.db.models import User
from gator.intervals import InvalidIntervalError, parse_interval
from gator.scheduler import run_forever
from gator.store import FeedStore
from gator.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

USAGE = "usage: python -m gator <command> [arguments...]"
DEFAULT_BROWSE_LIMIT = 2


class CommandError(Exception):
    """Bad usage or an unmet precondition; reported without a traceback."""


@dataclass
class Command:
    name: str
    args: list[str] = field(default_factory=list)

    def expect(self, count: int, what: str = "") -> None:
        if len(self.args) != count:
            detail = f" ({what})" if what else ""
            raise CommandError(
                f"{self.name} takes {count} argument(s){detail}, got {len(self.args)}"
            )


@dataclass
class State:
    ctx: AppContext
    store: FeedStore
    user_config: UserConfig

    @property
    def settings(self) -> Settings:
        return self.ctx.settings

    def set_current_user(self, name: str) -> None:
        self.user_config.set_user(name, self.settings.user_config_path)


Handler = Callable[[State, Command], Awaitable[None]]


class Commands:
    """Name → handler dispatch table."""

    def __init__(self):
        self.handlers: dict[str, Handler] = {}

    def register(self, name: str, handler: Handler) -> None:
        self.handlers[name] = handler

    async def run(self, state: State, cmd: Command) -> None:
        handler = self.handlers.get(cmd.name)
        if handler is None:
            known = ", ".join(sorted(self.handlers))
            raise CommandError(f"unknown command {cmd.name!r} (known: {known})")
        await handler(state, cmd)


def logged_in(handler: Callable[[State, Command, User], Awaitable[None]]) -> Handler:
    """Resolve the current user before calling ``handler``."""

    @wraps(handler)
    async def wrapper(state: State, cmd: Command) -> None:
        name = state.user_config.current_user_name
        if not name:
            raise CommandError("no current user; run `register <name>` or `login <name>` first")
        user = await state.store.get_user(name)
        if user is None:
            raise CommandError(f"current user {name!r} does not exist; run `register {name}`")
        await handler(state, cmd, user)

    return wrapper


# --------------------------------------------------------------------------- #
# Handlers
# --------------------------------------------------------------------------- #

async def handle_register(state: State, cmd: Command) -> None:
    cmd.expect(1, "username")
    name = cmd.args[0]
    if await state.store.get_user(name) is not None:
        raise CommandError(f"user {name!r} already exists")

    user = await state.store.create_user(name)
    state.set_current_user(user.name)
    logger.info("user_registered", user=user.name, user_id=str(user.id))
    print(f"User {user.name!r} created and set as current user.")


async def handle_login(state: State, cmd: Command) -> None:
    cmd.expect(1, "username")
    name = cmd.args[0]
    if await state.store.get_user(name) is None:
        raise CommandError(f"user {name!r} does not exist")

    state.set_current_user(name)
    print(f"Logged in as {name!r}.")


async def handle_users(state: State, cmd: Command) -> None:
    cmd.expect(0)
    current = state.user_config.current_user_name
    for user in await state.store.list_users():
        marker = " (current)" if user.name == current else ""
        print(f"* {user.name}{marker}")


async def handle_reset(state: State, cmd: Command) -> None:
    cmd.expect(0)
    deleted = await state.store.delete_all_users()
    logger.info("store_reset", users_deleted=deleted)
    print(f"Deleted {deleted} user(s) and everything they owned.")


@logged_in
async def handle_addfeed(state: State, cmd: Command, user: User) -> None:
    cmd.expect(2, "name, url")
    name, url = cmd.args
    if await state.store.get_feed_by_url(url) is not None:
        raise CommandError(f"a feed with url {url!r} already exists")

    feed = await state.store.create_feed(name, url, user.id)
    logger.info("feed_added", feed_id=str(feed.id), url=feed.url, user=user.name)
    print(f"ID:      {feed.id}")
    print(f"Name:    {feed.name}")
    print(f"URL:     {feed.url}")
    print(f"User ID: {feed.user_id}")
    print(f"Created: {feed.created_at.isoformat()}")


async def handle_feeds(state: State, cmd: Command) -> None:
    cmd.expect(0)
    for feed, owner in await state.store.list_feeds():
        last = feed.last_fetched_at.isoformat() if feed.last_fetched_at else "never"
        print(f"* {feed.name} <{feed.url}> added by {owner}, last fetched {last}")


@logged_in
async def handle_browse(state: State, cmd: Command, user: User) -> None:
    if len(cmd.args) > 1:
        raise CommandError(f"browse takes at most 1 argument (limit), got {len(cmd.args)}")

    limit = DEFAULT_BROWSE_LIMIT
    if cmd.args:
        try:
            limit = int(cmd.args[0])
        except ValueError:
            raise CommandError(f"invalid limit: {cmd.args[0]!r}") from None
        if limit <= 0:
            raise CommandError(f"limit must be positive, got {limit}")

    for post in await state.store.posts_for_user(user.id, limit):
        published = post.published_at.isoformat() if post.published_at else "unknown"
        print(f"{post.title}\n  {post.url}\n  published {published}\n")


async def handle_agg(state: State, cmd: Command) -> None:
    cmd.expect(1, "time_between_reqs")
    try:
        interval = parse_interval(cmd.args[0])
    except InvalidIntervalError as exc:
        raise CommandError(str(exc)) from None

    print(f"Collecting feeds every {cmd.args[0]}")
    await run_forever(state.ctx, interval)


def build_commands() -> Commands:
    commands = Commands()
    commands.register("register", handle_register)
    commands.register("login", handle_login)
    commands.register("users", handle_users)
    commands.register("reset", handle_reset)
    commands.register("addfeed", handle_addfeed)
    commands.register("feeds", handle_feeds)
    commands.register("browse", handle_browse)
    commands.register("agg", handle_agg)
    return commands


def parse_args(argv: list[str]) -> Command:
    if not argv:
        raise CommandError(USAGE)
    return Command(name=argv[0], args=list(argv[1:]))


async def run(argv: list[str], settings: Settings | None = None) -> int:
    """Run one command; returns the process exit status."""
    settings = settings or default_settings
    try:
        cmd = parse_args(argv)
        user_config = UserConfig.load(settings.user_config_path)
        async with AppContext.from_settings(settings) as ctx:
            state = State(ctx=ctx, store=FeedStore(ctx), user_config=user_config)
            await build_commands().run(state, cmd)
    except CommandError as exc:
        logger.error("command_failed", error=str(exc))
        return 1
    except SQLAlchemyError as exc:
        logger.error("database_error", error=str(exc))
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    return asyncio.run(run(sys.argv[1:] if argv is None else argv))
