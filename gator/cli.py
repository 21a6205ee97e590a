"""Command line interface for gator.

Usage:
    gator register NAME
    gator login NAME
    gator addfeed NAME URL
    gator agg 1m

Commands are looked up in a table built by ``build_command_table``. Commands
that act on behalf of a user receive the logged-in user as an argument; it
is looked up once per invocation from the config file.
"""

import argparse
import asyncio
import signal
import sys
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from .config.settings import settings
from .config.user_config import ConfigError, read_config, set_user
from .ingestion.fetcher import RSSFetcher
from .logging_config import configure_logging
from .pipeline.scheduler import FeedScheduler, parse_interval
from .storage.factory import get_database_url, get_storage
from .storage.interfaces import AlreadyExists, StorageError, StorageInterface, User

logger = structlog.get_logger()


class CommandError(Exception):
    """A command could not be carried out; the message is shown to the user."""


@dataclass
class App:
    """What every command handler gets: the store and the config file location."""
    storage: StorageInterface
    config_path: Optional[str] = None


@dataclass(frozen=True)
class Command:
    handler: Callable
    help: str
    arguments: Tuple[Tuple[tuple, dict], ...] = ()
    needs_user: bool = False


def arg(*flags, **kwargs) -> Tuple[tuple, dict]:
    return flags, kwargs


# Users

def cmd_register(app: App, args):
    """Create a user and log in as them."""
    if app.storage.get_user(args.name) is not None:
        raise CommandError(f"User '{args.name}' is already registered")
    try:
        user = app.storage.create_user(args.name)
    except AlreadyExists as e:
        raise CommandError(str(e)) from e
    set_user(user.name, app.config_path)
    print(f"User '{user.name}' has been created")


def cmd_login(app: App, args):
    """Switch the current user."""
    if app.storage.get_user(args.name) is None:
        raise CommandError(
            f"Nonexistent user '{args.name}' (use 'register' to create a new user)"
        )
    set_user(args.name, app.config_path)
    print(f"The user has been set as '{args.name}'")


def cmd_users(app: App, args):
    """List users, marking the current one."""
    current = read_config(app.config_path).current_user_name
    for user in app.storage.list_users():
        marker = " (current)" if user.name == current else ""
        print(f"* {user.name}{marker}")


def cmd_reset(app: App, args):
    """Delete all users and everything they own."""
    app.storage.reset()
    print("Database has been reset")


# Feeds

def cmd_agg(app: App, args):
    """Poll feeds forever, one every interval."""
    try:
        interval = parse_interval(args.interval)
    except ValueError as e:
        raise CommandError(str(e)) from e

    print(f"Collecting first feed now; afterwards every {args.interval}")
    asyncio.run(_aggregate(app, interval))


async def _aggregate(app: App, interval: float):
    loop = asyncio.get_running_loop()
    async with RSSFetcher() as fetcher:
        scheduler = FeedScheduler(app.storage, fetcher)
        task = asyncio.ensure_future(scheduler.run(interval))

        # Handle graceful shutdown
        installed = []
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, task.cancel)
                installed.append(signum)
            except NotImplementedError:
                # Not available on Windows event loops; Ctrl-C still interrupts.
                break

        try:
            await task
        except asyncio.CancelledError:
            logger.info("shutdown_signal_received")
            print("Stopped collecting feeds")
        finally:
            for signum in installed:
                loop.remove_signal_handler(signum)


def cmd_feeds(app: App, args):
    """List every feed and who added it."""
    for feed in app.storage.list_feeds():
        owner = app.storage.get_user_by_id(feed.user_id)
        owner_name = owner.name if owner else "<unknown>"
        print(f"{feed.name!r} ({feed.url}), added by user {owner_name}")


def cmd_addfeed(app: App, args, user: User):
    """Add a feed and follow it."""
    try:
        feed = app.storage.create_feed(args.name, args.url, user.id)
        app.storage.create_feed_follow(user.id, feed.id)
    except AlreadyExists as e:
        raise CommandError(str(e)) from e
    print(f"Added feed {feed.name!r}")
    print(f"  ID:   {feed.id}")
    print(f"  URL:  {feed.url}")
    print(f"  User: {user.name}")


def cmd_follow(app: App, args, user: User):
    """Follow an existing feed."""
    feed = app.storage.get_feed_by_url(args.url)
    if feed is None:
        raise CommandError(f"No feed with URL {args.url!r} (use 'addfeed' to add it)")
    try:
        follow = app.storage.create_feed_follow(user.id, feed.id)
    except AlreadyExists as e:
        raise CommandError(f"User '{user.name}' already follows {args.url!r}") from e
    print(f"Feed name: {follow.feed_name!r}")
    print(f"User name: {follow.user_name!r}")


def cmd_following(app: App, args, user: User):
    """List the feeds the current user follows."""
    for follow in app.storage.list_feed_follows(user.id):
        print(follow.feed_name)


def cmd_unfollow(app: App, args, user: User):
    """Stop following a feed."""
    if app.storage.delete_feed_follow(user.id, args.url) == 0:
        raise CommandError(f"URL {args.url!r} isn't among the feeds you follow")
    print(f"Unfollowed {args.url}")


def cmd_browse(app: App, args, user: User):
    """Show the newest posts from followed feeds."""
    if args.limit <= 0:
        raise CommandError("limit must be a positive number")
    posts = app.storage.get_posts_for_user(user.id, args.limit)
    if not posts:
        print("No posts yet.")
        return
    for post in posts:
        print(f"\n{post.published_at:%Y-%m-%d %H:%M} {post.title}")
        print(f"  {post.url}")
        if post.description:
            print(f"  {post.description[:200]}")


def build_command_table() -> Dict[str, Command]:
    """Build the table of command name -> Command."""
    return {
        "register": Command(cmd_register, "Register a user and log in", (arg("name"),)),
        "login": Command(cmd_login, "Log in as an existing user", (arg("name"),)),
        "users": Command(cmd_users, "List users"),
        "reset": Command(cmd_reset, "Delete all users, feeds and posts"),
        "agg": Command(
            cmd_agg,
            "Collect feeds continuously",
            (arg("interval", help="Time between requests, e.g. 30s, 1m, 1h"),),
        ),
        "feeds": Command(cmd_feeds, "List all feeds"),
        "addfeed": Command(
            cmd_addfeed, "Add a feed and follow it", (arg("name"), arg("url")), needs_user=True
        ),
        "follow": Command(cmd_follow, "Follow a feed", (arg("url"),), needs_user=True),
        "following": Command(cmd_following, "List followed feeds", needs_user=True),
        "unfollow": Command(cmd_unfollow, "Unfollow a feed", (arg("url"),), needs_user=True),
        "browse": Command(
            cmd_browse,
            "Show recent posts from followed feeds",
            (arg("limit", nargs="?", type=int, default=settings.browse_default_limit,
                 help="Max posts"),),
            needs_user=True,
        ),
    }


def build_parser(table: Dict[str, Command]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gator", description="Multi-user RSS aggregator")
    parser.add_argument("--config", help="Path to the JSON config file")
    parser.add_argument("--database-url", help="Database URL (overrides config)")
    parser.add_argument("--log-level", default=settings.log_level, help="Log level")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    for name, command in table.items():
        p = subparsers.add_parser(name, help=command.help)
        for flags, kwargs in command.arguments:
            p.add_argument(*flags, **kwargs)

    return parser


def current_user(app: App) -> User:
    """Look up the logged-in user named in the config file."""
    name = read_config(app.config_path).current_user_name
    if not name:
        raise CommandError("Not logged in (use 'login' or 'register')")
    user = app.storage.get_user(name)
    if user is None:
        raise CommandError(f"Nonexistent user '{name}' (use 'register' to create a new user)")
    return user


def dispatch(table: Dict[str, Command], app: App, args: argparse.Namespace) -> None:
    """Run the command named by ``args.command``."""
    command = table.get(args.command)
    if command is None:
        raise CommandError(f"Nonexistent command '{args.command}'")

    if command.needs_user:
        command.handler(app, args, current_user(app))
    else:
        command.handler(app, args)


def main(argv: Optional[List[str]] = None) -> int:
    table = build_command_table()
    parser = build_parser(table)
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    configure_logging(args.log_level)

    try:
        config = read_config(args.config)
        url = args.database_url or get_database_url(config)
        app = App(storage=get_storage(url), config_path=args.config)
        dispatch(table, app, args)
    except (CommandError, ConfigError, StorageError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
