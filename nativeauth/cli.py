"""Command-line interface for nativeauth."""

from __future__ import annotations

import argparse
import os
import sys

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from .auth import create_session_from_settings
from .config import NativeAuthSettings, OAuth2Settings
from .exceptions import ConfigurationError
from .log import set_level


if TYPE_CHECKING:
    from .auth import AuthorizationSession, TokenSet


def main(argv: list[str] | None = None) -> int:
    """Run the main CLI entry point.

    Returns
    -------
    int
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="nativeauth",
        description="OAuth2 authorization code flow for native applications",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # login command
    login_parser = subparsers.add_parser(
        "login",
        help="Sign in through the browser and print the resulting tokens",
    )
    _add_client_arguments(login_parser)
    login_parser.add_argument(
        "--scope",
        nargs="+",
        default=None,
        help="Scopes to request (default: oauth2.scopes from configuration)",
    )
    login_parser.add_argument(
        "--login-hint",
        default=None,
        help="Account to preselect on the provider's sign-in page",
    )
    login_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Loopback redirect port (default: 6502)",
    )

    # refresh command
    refresh_parser = subparsers.add_parser(
        "refresh",
        help="Exchange a refresh token for a new token set",
    )
    refresh_parser.add_argument("refresh_token", help="The refresh token to exchange")
    _add_client_arguments(refresh_parser)

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration (default)",
    )
    config_group.add_argument(
        "--toml",
        action="store_true",
        help="Export configuration as TOML",
    )
    config_group.add_argument(
        "--sources",
        action="store_true",
        help="Show configuration file sources",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    args = parser.parse_args(argv)

    if args.command == "login":
        return handle_login(args)
    if args.command == "refresh":
        return handle_refresh(args)
    if args.command == "config":
        return handle_config(args)
    parser.print_help()
    return 0


def _add_client_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--provider",
        choices=["microsoft", "google", "facebook", "custom"],
        default=None,
        help="Identity provider (default: oauth2.provider from configuration)",
    )
    parser.add_argument(
        "--client-id",
        default=None,
        help="OAuth2 client ID (default: oauth2.client_id from configuration)",
    )
    parser.add_argument(
        "--show-tokens",
        action="store_true",
        help="Print tokens in full instead of truncated",
    )


def _load_settings(args: argparse.Namespace) -> NativeAuthSettings:
    """Load settings with command line overrides applied to the oauth2 section."""
    settings = NativeAuthSettings()
    set_level(settings.log.level)

    overrides = {
        "provider": args.provider,
        "client_id": args.client_id,
        "login_hint": getattr(args, "login_hint", None),
        "redirect_port": getattr(args, "port", None),
    }
    update = {k: v for k, v in overrides.items() if v is not None}
    if update:
        try:
            settings.oauth2 = OAuth2Settings.model_validate(
                {**settings.oauth2.model_dump(), **update}
            )
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            msg = f"Invalid command line override: {problems}"
            raise ConfigurationError(msg) from e
    return settings


def _mask(value: str, show: bool) -> str:
    if show or len(value) <= 12:
        return value
    return f"{value[:8]}...{value[-4:]}"


def format_tokens(tokens: TokenSet, show: bool = False) -> str:
    """Format a token set for display.

    Parameters
    ----------
    tokens : TokenSet
        The token set to format.
    show : bool
        Print tokens in full instead of truncated.

    Returns
    -------
    str
        One ``name = value`` line per populated field.
    """
    lines = []
    for name in ("access_token", "id_token", "refresh_token"):
        value = getattr(tokens, name)
        if value:
            lines.append(f"{name:<14} = {_mask(value, show)}")
    if tokens.token_type:
        lines.append(f"{'token_type':<14} = {tokens.token_type}")
    lines.append(f"{'expires_in':<14} = {tokens.expires_in}")
    return "\n".join(lines)


def _report(session: AuthorizationSession, ok: bool, show: bool) -> int:
    if not ok:
        print(f"Error: {session.error}", file=sys.stderr)
        return 1
    print(format_tokens(session.tokens, show=show))
    return 0


def handle_login(args: argparse.Namespace) -> int:
    """Handle the login command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    try:
        settings = _load_settings(args)
        session = create_session_from_settings(settings)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    scope = args.scope if args.scope is not None else settings.oauth2.scope_list
    with session:
        ok = session.authorize(scope)
        return _report(session, ok, args.show_tokens)


def handle_refresh(args: argparse.Namespace) -> int:
    """Handle the refresh command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    try:
        settings = _load_settings(args)
        session = create_session_from_settings(settings)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    with session:
        ok = session.refresh(args.refresh_token)
        return _report(session, ok, args.show_tokens)


def handle_config(args: argparse.Namespace) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    if args.sources:
        return show_config_sources()

    settings = NativeAuthSettings()
    output = settings.to_toml() if args.toml else settings.show()

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0


def show_config_sources() -> int:
    """Show configuration file sources and their status.

    Returns
    -------
    int
        Exit code.
    """
    sources = [
        ("pyproject.toml [tool.nativeauth]", "pyproject.toml"),
        ("./nativeauth.toml", "nativeauth.toml"),
        ("NATIVEAUTH_CONFIG_FILE", os.environ.get("NATIVEAUTH_CONFIG_FILE", "")),
    ]

    print("Configuration Sources (in order of precedence):\n")
    print(f"{'Source':<36} {'Status':<15} {'Path'}")
    print("-" * 80)
    print(f"{'Built-in defaults':<36} {'Active':<15}")

    for name, path_str in sources:
        if not path_str:
            print(f"{name:<36} {'Not set':<15}")
            continue
        path = Path(path_str).expanduser()
        status = "Found" if path.exists() else "Not found"
        print(f"{name:<36} {status:<15} {path}")

    env_vars = sorted(k for k in os.environ if k.startswith("NATIVEAUTH_") and k != "NATIVEAUTH_CONFIG_FILE")
    status = f"{len(env_vars)} vars" if env_vars else "No vars"
    print(f"{'Environment variables':<36} {status:<15} {', '.join(env_vars[:3])}")

    print("\nNote: Later sources override earlier ones.")
    return 0
