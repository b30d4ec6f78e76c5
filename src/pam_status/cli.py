import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.table import Table
from rich.text import Text

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PUBLISH_FAILED = 1
EXIT_CONFIG = 2


def print_summary(console: Console, snapshot) -> None:
    from pam_status.health import map_outcome
    from pam_status.models import Status

    table = Table(title=f"Checked {snapshot.checked_at:%Y-%m-%d %H:%M:%S}")
    table.add_column("Server")
    table.add_column("Role")
    table.add_column("Status")
    for verdict in snapshot.verdicts:
        style = "bold green" if verdict.status == Status.GOOD else "bold red"
        table.add_row(verdict.label or verdict.server_id, verdict.role.value, Text(verdict.message, style=style))
    for task in snapshot.backups:
        color, icon = map_outcome(task)
        label = "● success" if icon == "ok" else f"⚠ {task.error or task.last_result}"
        table.add_row(task.task_name, "backup", Text(label, style=f"bold {color}"))
    console.print(table)


async def run(args, settings, servers) -> int:
    from pam_status.alerts import dispatch
    from pam_status.poller import Poller
    from pam_status.publish import destinations_for, publish
    from pam_status.report import render, write_report
    from pam_status.windows import WindowsBackend

    backend = WindowsBackend(
        timeout=settings.timeout,
        username=settings.ssh_username,
        known_hosts=settings.ssh_known_hosts,
    )
    try:
        snapshot = await Poller(settings, servers, backend).run_cycle()

        html = render(snapshot, settings.maintenance_message, settings.refresh_interval)
        path = write_report(html, settings.output_path)

        failures = []
        if not args.no_publish:
            dirs = destinations_for(servers, settings.destination_template, settings.destinations)
            failures = publish(path, dirs, keep_local=settings.keep_local or not dirs)

        if args.alert or settings.alerts.enabled:
            await dispatch(backend, settings.alerts, snapshot)
    finally:
        await backend.close()

    if not args.quiet:
        print_summary(Console(), snapshot)
    return EXIT_PUBLISH_FAILED if failures else EXIT_OK


def main():
    parser = argparse.ArgumentParser(
        prog="pam-status",
        description="Render a status page for Windows services across privileged access servers",
    )
    parser.add_argument(
        "--inventory", "-i",
        required=True,
        help="Path to inventory file (INI format, one section per role)",
    )
    parser.add_argument(
        "--config", "-c",
        required=True,
        help="Path to YAML config file",
    )
    parser.add_argument(
        "--log", "-l",
        default=None,
        help="Path to log file (if omitted, only warnings go to the console)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log progress to the console",
    )
    parser.add_argument(
        "--alert",
        action="store_true",
        help="Send email/popup alerts when a server is unhealthy",
    )
    parser.add_argument(
        "--no-publish",
        action="store_true",
        help="Write the page locally but do not copy it to the web servers",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Do not print the summary table",
    )
    args = parser.parse_args()

    if args.log:
        logging.basicConfig(
            filename=args.log,
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )
    else:
        from rich.logging import RichHandler

        logging.basicConfig(
            level=logging.INFO if args.verbose else logging.WARNING,
            format="%(message)s",
            handlers=[RichHandler(show_path=False)],
        )

    from pam_status.config import load_config
    from pam_status.errors import ConfigurationError, RenderError
    from pam_status.inventory import load_inventory

    try:
        settings = load_config(args.config)
        servers, vault_host = load_inventory(args.inventory)
        settings.vault_host = settings.vault_host or vault_host
        sys.exit(asyncio.run(run(args, settings, servers)))
    except ConfigurationError as exc:
        log.critical("Aborting: %s", exc)
        sys.exit(EXIT_CONFIG)
    except RenderError as exc:
        log.error("%s", exc)
        sys.exit(EXIT_PUBLISH_FAILED)
