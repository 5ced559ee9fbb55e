"""Command-line interface for ailogin account connections."""

from __future__ import annotations

import argparse
import asyncio
import sys

from typing import TYPE_CHECKING

from .log import enable_debug, get_logger, set_level


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .auth.manager import OAuthManager
    from .config import AILoginSettings


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="ailogin",
        description="Connect AI provider accounts with OAuth",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log flows, token requests and store access to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List providers and connection status")

    connect_parser = subparsers.add_parser(
        "connect",
        help="Sign in to a provider in the system browser",
    )
    connect_parser.add_argument("provider", help="Provider id (e.g. anthropic, openai)")

    disconnect_parser = subparsers.add_parser(
        "disconnect",
        help="Forget the stored account for a provider",
    )
    disconnect_parser.add_argument("provider", help="Provider id")

    import_parser = subparsers.add_parser(
        "import-cli",
        help="Import tokens from the provider's own CLI",
    )
    import_parser.add_argument("provider", help="Provider id")

    key_parser = subparsers.add_parser(
        "api-key",
        help="Create a long-lived API key from a connected account",
    )
    key_parser.add_argument("provider", help="Provider id")
    key_parser.add_argument(
        "--name",
        "-n",
        type=str,
        default="ailogin",
        help="Name for the new key (default: ailogin)",
    )

    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the main CLI entry point.

    Returns
    -------
    int
        Exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    from .config import get_settings

    settings = get_settings()
    get_logger()
    set_level(settings.log.level)
    if args.debug:
        enable_debug()

    if args.command == "config":
        return handle_config(args, settings)

    handlers: dict[str, Callable[[argparse.Namespace, OAuthManager], Awaitable[int]]] = {
        "list": handle_list,
        "connect": handle_connect,
        "disconnect": handle_disconnect,
        "import-cli": handle_import_cli,
        "api-key": handle_api_key,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 0
    return asyncio.run(_run(handler, args, settings))


async def _run(
    handler: Callable[[argparse.Namespace, OAuthManager], Awaitable[int]],
    args: argparse.Namespace,
    settings: AILoginSettings,
) -> int:
    from .auth.manager import OAuthManager

    async with OAuthManager.from_settings(settings) as manager:
        return await handler(args, manager)


def handle_config(args: argparse.Namespace, settings: AILoginSettings) -> int:
    """Handle the config command."""
    print(settings.to_env() if args.env else settings.show())
    return 0


async def handle_list(args: argparse.Namespace, manager: OAuthManager) -> int:  # noqa: ARG001
    """Handle the list command."""
    result = await manager.list()
    print(f"{'Provider':<12} {'Name':<10} {'Status':<14} {'Account'}")
    print("-" * 60)
    for status in result.providers:
        if not status.connected:
            state = "not connected"
        elif status.is_expired:
            state = "expired"
        else:
            state = "connected"
        account = ""
        if status.profile is not None:
            account = status.profile.email or status.profile.name or status.profile.id
        print(f"{status.id:<12} {status.name:<10} {state:<14} {account}")
    return 0


async def handle_connect(args: argparse.Namespace, manager: OAuthManager) -> int:
    """Handle the connect command."""
    print(f"Opening browser to sign in to {args.provider}...")
    result = await manager.connect(args.provider)
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    profile = result.profile
    who = (profile.email or profile.name or profile.id) if profile else args.provider
    print(f"Connected {args.provider} as {who}")
    return 0


async def handle_disconnect(args: argparse.Namespace, manager: OAuthManager) -> int:
    """Handle the disconnect command."""
    result = await manager.disconnect(args.provider)
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    print(f"Disconnected {args.provider}")
    return 0


async def handle_import_cli(args: argparse.Namespace, manager: OAuthManager) -> int:
    """Handle the import-cli command."""
    result = await manager.import_cli_credentials(args.provider)
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    print(f"Imported CLI credentials for {args.provider}")
    return 0


async def handle_api_key(args: argparse.Namespace, manager: OAuthManager) -> int:
    """Handle the api-key command."""
    result = await manager.create_api_key(args.provider, args.name)
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    print(result.api_key)
    return 0


if __name__ == "__main__":
    sys.exit(main())
