#!/usr/bin/env python3
"""
authk - OIDC Token Maintainer

Establishes and maintains an OIDC connection, keeping a valid access token in
one or more .env files.

Usage:
    authk                                  # Maintain the token in .env using authk.yaml
    authk --config prod.yaml --env app.env # Custom config and env file
    authk get                              # Print a fresh access token and exit
    authk inspect                          # Decode the token stored in .env
    authk inspect --json                   # Same, as machine-readable JSON
    authk version                          # Print version information
"""

import argparse
import logging
import platform
import signal
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .core.config import AuthkConfig, AuthkSettings, load_config
from .core.exceptions import AuthkError
from .env.manager import EnvFileManager, find_upwards
from .inspector import decode_token, format_json, format_pretty
from .maintenance.scheduler import TokenMaintainer
from .oidc.client import OIDCClient

logger = logging.getLogger(__name__)


LOG_FORMAT = "%(asctime)s,p%(process)s,{%(filename)s:%(lineno)d},%(levelname)s,%(message)s"

BANNER = r"""
   __ _ _   _| |_| |__ | | __
  / _' | | | | __| '_ \| |/ /
 | (_| | |_| | |_| | | |   <
  \__,_|\__,_|\__|_| |_|_|\_\
"""


def setup_logging(level: int) -> None:
    """Configure root logging to stderr."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )


def _setup_signal_handlers(maintainer: TokenMaintainer) -> None:
    """Stop the maintenance loop on SIGINT/SIGTERM."""
    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down gracefully...")
        maintainer.stop()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)


def _build_stores(config: AuthkConfig, env_file: Path) -> List[EnvFileManager]:
    return [EnvFileManager(target.file, target.key) for target in config.effective_targets(env_file)]


def cmd_run(args: argparse.Namespace) -> int:
    print(BANNER)
    setup_logging(logging.DEBUG if args.debug else logging.INFO)

    config = load_config(args.config)
    stores = _build_stores(config, args.env)
    for store in stores:
        logger.info(f"Starting authk: env_file={store.file_path} token_key={store.key}")

    client = OIDCClient(config)
    maintainer = TokenMaintainer(client, stores)
    _setup_signal_handlers(maintainer)

    maintainer.run()
    return 0


def cmd_get(args: argparse.Namespace) -> int:
    # Keep stdout clean for the token unless debugging
    setup_logging(logging.DEBUG if args.debug else logging.ERROR)

    config = load_config(args.config)
    client = OIDCClient(config)
    credential = client.get_token()

    print(credential.access_token)
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    setup_logging(logging.DEBUG if args.debug else logging.WARNING)

    config = load_config(_find_or_keep(args.config))
    # Configured targets all hold the same token; read the first one
    target = config.effective_targets(args.env)[0]
    token = EnvFileManager(_find_or_keep(Path(target.file)), target.key).get()
    header, payload = decode_token(token)

    if args.json:
        print(format_json(header, payload))
    else:
        print(format_pretty(header, payload))
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    print(f"authk {__version__}")
    print(f"  Python:  {platform.python_version()}")
    print(f"  OS/Arch: {platform.system().lower()}/{platform.machine()}")
    return 0


def _find_or_keep(path: Path) -> Path:
    try:
        return find_upwards(path)
    except FileNotFoundError:
        return path


def build_parser(settings: Optional[AuthkSettings] = None) -> argparse.ArgumentParser:
    settings = settings or AuthkSettings()

    parser = argparse.ArgumentParser(
        prog="authk",
        description="OIDC Token Maintainer - keeps a valid access token in .env files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Maintain the token forever using authk.yaml and .env
    authk

    # Print a fresh access token
    authk get

    # Decode the stored token as JSON
    authk inspect --json

Environment variables AUTHK_CONFIG_FILE, AUTHK_ENV_FILE and AUTHK_DEBUG
provide defaults for the global options.
"""
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=settings.config_file,
        help=f"Config file (default: {settings.config_file})"
    )

    parser.add_argument(
        "--env",
        type=Path,
        default=settings.env_file,
        help=f"Env file used when no targets are configured (default: {settings.env_file})"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.debug,
        help="Enable debug logging"
    )

    parser.set_defaults(func=cmd_run)
    subparsers = parser.add_subparsers(title="commands")

    run_parser = subparsers.add_parser("run", help="Maintain the token (default)")
    run_parser.set_defaults(func=cmd_run)

    get_parser = subparsers.add_parser("get", help="Print a valid access token to stdout")
    get_parser.set_defaults(func=cmd_get)

    inspect_parser = subparsers.add_parser("inspect", help="Decode the token stored in the env file")
    inspect_parser.add_argument(
        "--json",
        action="store_true",
        help="Output as valid JSON without colors"
    )
    inspect_parser.set_defaults(func=cmd_inspect)

    version_parser = subparsers.add_parser("version", help="Print version information")
    version_parser.set_defaults(func=cmd_version)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the authk command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.func(args)
    except (AuthkError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
