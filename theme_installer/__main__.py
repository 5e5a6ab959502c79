"""
Entry point for the theme installer.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Iterable

from tqdm.contrib.logging import logging_redirect_tqdm

from .application.domain import DomainEvent, InstallOutcome
from .application.exceptions import ThemeInstallerError
from .application.service import ThemeService
from .infrastructure.containers import Container

logger = logging.getLogger(__name__)


def setup_logging(level: str):
    """Applies basic logging configuration."""
    logging.basicConfig(level=level)


def dispatch_events(events: Iterable[DomainEvent]):
    """Hands events over to whoever listens; here, the log."""
    for event in events:
        logger.info(f"Event {event.name}: {event.payload}")


def _install_result(outcome: InstallOutcome) -> dict:
    dispatch_events(outcome.events)
    return {
        **outcome.manifest.to_dict(),
        "storage_key": outcome.package.storage_key,
        "overridden": outcome.package.overridden_existing,
        "cache_invalidate": outcome.cache_invalidate,
    }


async def run_command(service: ThemeService, plan, args: argparse.Namespace):
    """Runs one sub-command and returns a JSON-serializable result."""

    if args.command == "install":
        outcome = await service.install_from_remote(args.ref, plan)
        return _install_result(outcome)

    if args.command == "upload":
        outcome = await service.upload(args.file, plan, original_name=args.name)
        return _install_result(outcome)

    if args.command == "install-zip":
        outcome = await service.install_local_zip(args.file, plan)
        return _install_result(outcome)

    if args.command == "activate":
        activation = await service.activate(args.name, plan)
        return {
            **activation.manifest.to_dict(active=True),
            "previous": activation.previous_theme,
            "cache_invalidate": activation.cache_invalidate,
        }

    if args.command == "destroy":
        removal = await service.destroy(args.name, plan)
        return {
            "name": removal.name,
            "storage_key": removal.storage_key,
            "cache_invalidate": removal.cache_invalidate,
        }

    if args.command == "list":
        active = await service.active_theme_name()
        themes = await service.list_themes()
        return [theme.to_dict(active=theme.name == active) for theme in themes]

    if args.command == "active":
        manifest = await service.read_active()
        return manifest.to_dict(active=True)

    if args.command == "export":
        path = await service.export_theme(args.name, args.output)
        return {"name": args.name, "path": str(path)}

    raise ValueError(f"Unknown command {args.command}")


async def run_application(args: argparse.Namespace):
    """Wires and runs the application using the DI container."""

    container = Container()
    setup_logging(level=container.config().logging.level)
    service = container.theme_service()
    plan = container.plan()

    try:
        with logging_redirect_tqdm():
            result = await run_command(service, plan, args)
    except ThemeInstallerError as e:
        logger.error(f"An application error occurred ({e.status_code}): {e}")
        sys.exit(1)
    finally:
        await container.http_client().aclose()

    print(json.dumps(result, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Theme Installer")
    commands = parser.add_subparsers(dest="command", required=True)

    install = commands.add_parser(
        "install", help="Install a theme from a GitHub repository."
    )
    install.add_argument(
        "--ref", required=True, help="Repository reference, e.g. tryghost/casper"
    )

    upload = commands.add_parser("upload", help="Install an uploaded zip file.")
    upload.add_argument("--file", required=True, type=Path)
    upload.add_argument(
        "--name", help="Original file name, defaults to the file's own name."
    )

    install_zip = commands.add_parser(
        "install-zip", help="Install a zip file already on this machine."
    )
    install_zip.add_argument("--file", required=True, type=Path)

    for name, help_text in (
        ("activate", "Make an installed theme the active one."),
        ("destroy", "Delete an installed theme."),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("--name", required=True)

    commands.add_parser("list", help="List installed themes.")
    commands.add_parser("active", help="Show the active theme.")

    export = commands.add_parser("export", help="Zip an installed theme.")
    export.add_argument("--name", required=True)
    export.add_argument("--output", required=True, type=Path)

    return parser


if __name__ == "__main__":
    cli_args = build_parser().parse_args()

    asyncio.run(run_application(cli_args))
