"""
carton CLI - Run a plugin container from a settings file.

Usage:
    carton run [-c carton.toml] [--timeout S] [--once]   Start plugins, wait for a signal, end them
    carton check [-c carton.toml]                         Resolve and register plugins without starting
    carton init [carton.toml] [--force]                   Write a commented default settings file

Exit codes:
    0    success
    1    bad settings, unresolvable plugins or failed startup
    2    failed shutdown
    130  interrupted
"""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path

from carton import __version__
from carton.config import DEFAULT_CONFIG_FILE, ConfigError, Settings, load_settings, write_default_config
from carton.container import Container
from carton.plugin.loader import ResolverError
from carton.plugin.plugin import PluginError

logger = logging.getLogger(__name__)


class CLIError(Exception):
    """Base exception for CLI errors."""

    pass


class ShutdownError(CLIError):
    """Raised when plugins fail to end."""

    pass


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with run/check/init commands."""
    parser = argparse.ArgumentParser(
        prog="carton",
        description="Carton - in-process plugin lifecycle container",
    )
    parser.add_argument("--version", action="version", version=f"carton {__version__}")

    commands = parser.add_subparsers(dest="command", metavar="command")

    run = commands.add_parser("run", help="Start plugins, wait for a signal, end them")
    run.add_argument("-c", "--config", type=Path, default=DEFAULT_CONFIG_FILE, help="Settings file")
    run.add_argument("--timeout", type=float, help="Override the startup timeout (seconds)")
    run.add_argument("--once", action="store_true", help="End plugins right after startup")
    run.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    check = commands.add_parser("check", help="Resolve and register plugins without starting")
    check.add_argument("-c", "--config", type=Path, default=DEFAULT_CONFIG_FILE, help="Settings file")
    check.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    init = commands.add_parser("init", help="Write a commented default settings file")
    init.add_argument("path", nargs="?", type=Path, default=DEFAULT_CONFIG_FILE)
    init.add_argument("--force", action="store_true", help="Overwrite an existing file")

    return parser


def configure_logging(level: str, verbose: bool = False) -> None:
    """Configure root logging for the CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


def build_container(settings: Settings) -> Container:
    """
    Create a container and register every configured plugin.

    Raises:
        CLIError: If a plugin cannot be resolved or is not a valid descriptor
    """
    container = Container.from_settings(settings)

    for name in settings.plugins:
        try:
            container.use(name)
        except (ResolverError, PluginError) as e:
            raise CLIError(f"Cannot use plugin '{name}': {e}") from e

    return container


async def run_container(container: Container, timeout: float, once: bool = False) -> None:
    """
    Start the container, wait for SIGINT/SIGTERM (unless ``once``), end it.

    Raises:
        CLIError: If startup fails
        ShutdownError: If shutdown fails
    """
    try:
        await container.start(timeout)
    except Exception as e:
        states = ", ".join(f"{name}={state.value}" for name, state in container.states().items())

        # End whatever did start before reporting the failure
        if container.started:
            try:
                await container.end()
            except Exception as end_error:
                logger.error("Failed to end plugins after failed startup: %r", end_error)

        raise CLIError(f"Container failed to start: {e!r} ({states})") from e

    print(f"Started: {', '.join(p.name for p in container.started) or 'no plugins'}")

    if not once:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            # Not available on Windows event loops
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop.set)
        await stop.wait()

    try:
        await container.end()
    except Exception as e:
        remaining = ", ".join(p.name for p in container.started)
        raise ShutdownError(f"Container failed to shut down properly: {e!r} (still running: {remaining})") from e

    print("Ended")


def run_command(args: argparse.Namespace) -> int:
    """Handle `carton run`."""
    settings = load_settings(args.config)
    configure_logging(settings.log_level, args.verbose)

    container = build_container(settings)
    timeout = args.timeout if args.timeout is not None else settings.timeout

    asyncio.run(run_container(container, timeout, args.once))
    return 0


def check_command(args: argparse.Namespace) -> int:
    """Handle `carton check`."""
    settings = load_settings(args.config)
    configure_logging(settings.log_level, args.verbose)

    container = build_container(settings)
    for plugin in container.plugins:
        print(f"{plugin.name}: {plugin.state.value}")
    return 0


def init_command(args: argparse.Namespace) -> int:
    """Handle `carton init`."""
    write_default_config(args.path, overwrite=args.force)
    print(f"Wrote {args.path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for carton CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "run":
            return run_command(args)
        elif args.command == "check":
            return check_command(args)
        elif args.command == "init":
            return init_command(args)

        parser.print_help()
        return 0

    except ShutdownError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except (CLIError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
