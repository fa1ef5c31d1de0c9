"""
Command-line entry point.

Logs in with a password, performs one sync so the client knows its rooms,
then runs a single facade operation:

    roomgate send ROOM MESSAGE [--encrypted]
    roomgate invite ROOM USER
    roomgate create-room NAME [--invite USER ...]
    roomgate members [ROOM]
    roomgate listen [ROOM] [--auto-join] [--echo-commands]
"""

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional

from nio import AsyncClient, MatrixRoom

from .config import get_settings, load_credentials
from .exceptions import (
    ConfigurationError,
    MatrixIntegrationError,
    MissingCredentialsError,
    RoomNotFoundError,
)
from .integrations.matrix.components.auth import MatrixAuthHandler, create_client
from .integrations.matrix.components.events import MessageFilter
from .integrations.matrix.facade import MatrixMessagingFacade
from .results import ErrorKind, OperationResult
from .utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def parse_message(raw: str) -> Any:
    """Treat the argument as JSON when it parses, otherwise as a plain string."""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="roomgate",
        description="Membership-gated messaging for Matrix rooms",
    )
    parser.add_argument("--credentials", help="JSON file with homeserverUrl, username and password")
    parser.add_argument("--log-level", default=settings.log_level)
    parser.add_argument("--log-format", choices=["text", "json"], default=settings.log_format)

    subparsers = parser.add_subparsers(dest="command", required=True)

    send = subparsers.add_parser("send", help="Send a message to a joined room")
    send.add_argument("room")
    send.add_argument("message", help="JSON payload or plain text")
    send.add_argument("--encrypted", action="store_true", help="Refuse rooms without encryption")

    invite = subparsers.add_parser("invite", help="Invite a user if power level allows")
    invite.add_argument("room")
    invite.add_argument("user")

    create = subparsers.add_parser("create-room", help="Create a private encrypted room")
    create.add_argument("name")
    create.add_argument("--invite", action="append", default=[], metavar="USER")

    members = subparsers.add_parser("members", help="List joined members")
    members.add_argument("room", nargs="?")

    listen = subparsers.add_parser("listen", help="Print incoming text messages")
    listen.add_argument("room", nargs="?")
    listen.add_argument("--auto-join", action="store_true", help="Join rooms on invite")
    listen.add_argument(
        "--echo-commands",
        action="store_true",
        help="Reply with a notice to messages starting with '!'",
    )

    return parser


def _print_result(result: OperationResult) -> int:
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def register_listeners(facade: MatrixMessagingFacade, args: argparse.Namespace) -> None:
    """
    Install the ``listen`` callbacks.

    Must run before the first sync: invites pending at startup arrive in
    that sync and are not delivered again.
    """

    async def _print_message(room: MatrixRoom, event) -> None:
        print(f"({room.display_name}) {event.sender} :: {event.body}")
        if args.echo_commands and event.body.startswith("!"):
            await facade.message_ops.send_notice(room.room_id, event.body)

    if args.auto_join:
        facade.enable_auto_join()
    facade.watch_undecryptable()
    facade.on_event(MessageFilter(room_id=args.room, ignore_own=True), _print_message)


async def _listen(client: AsyncClient, args: argparse.Namespace) -> int:
    settings = get_settings()
    logger.info("listening", room_id=args.room or "all")
    await client.sync_forever(timeout=settings.matrix.sync_timeout_ms)
    return 0


async def run_command(facade: MatrixMessagingFacade, client: AsyncClient, args: argparse.Namespace) -> int:
    if args.command == "send":
        message = parse_message(args.message)
        if args.encrypted:
            return _print_result(await facade.send_encrypted_message(args.room, message))
        return _print_result(await facade.send_plain_message(args.room, message))

    if args.command == "invite":
        return _print_result(await facade.invite_user(args.room, args.user))

    if args.command == "create-room":
        return _print_result(await facade.create_room(args.name, tuple(args.invite)))

    if args.command == "members":
        if args.room:
            try:
                member_ids = facade.get_room_member_ids(args.room)
            except RoomNotFoundError as e:
                print(str(e), file=sys.stderr)
                return 1
            print("\n".join(member_ids))
        else:
            print(json.dumps(facade.get_joined_members_by_room(), indent=2))
        return 0

    if args.command == "listen":
        return await _listen(client, args)

    raise ValueError(f"Unknown command: {args.command}")


async def async_main(args: argparse.Namespace) -> int:
    settings = get_settings()
    credentials = load_credentials(args.credentials)

    client = create_client(credentials)
    try:
        auth = MatrixAuthHandler(credentials, settings.matrix.device_name)
        login = await auth.login_with_retry(client)
        logger.info("logged_in", user_id=login.user_id, device_id=login.device_id)

        facade = MatrixMessagingFacade(client, settings.matrix.default_invite_power_level)
        if args.command == "listen":
            register_listeners(facade, args)

        sync_filter = {"room": {"timeline": {"limit": settings.matrix.initial_sync_limit}}}
        await client.sync(timeout=settings.matrix.sync_timeout_ms, sync_filter=sync_filter, full_state=True)

        return await run_command(facade, client, args)
    finally:
        await client.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(log_level=args.log_level, log_format=args.log_format, log_file=settings.log_file)

    try:
        return asyncio.run(async_main(args))
    except MissingCredentialsError as e:
        logger.error("command_failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return _print_result(
            OperationResult.fail(ErrorKind.MISSING_CREDENTIALS, str(e), missing_fields=e.missing_fields)
        )
    except (ConfigurationError, MatrixIntegrationError) as e:
        logger.error("command_failed", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
