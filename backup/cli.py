"""Command line entry point: ``python -m backup {backup,restore,list}``."""

from __future__ import annotations

import argparse
import sys
from enum import IntEnum
from typing import Any, Sequence

import structlog

from models import BackupOperation, RestoreReport, RunStatus, UnitMode, UnitStatus
from observability.logging import configure_logging
from settings import BackupSettings, get_settings

from .errors import BackupError, ConfigurationError
from .service import BackupOrchestrator
from .tools import check_binaries


logger = structlog.get_logger(__name__)


class ExitCode(IntEnum):
    ok = 0
    failed = 1
    usage = 2
    partial = 3


_STATUS_EXIT = {
    RunStatus.completed: ExitCode.ok,
    RunStatus.partial: ExitCode.partial,
    RunStatus.failed: ExitCode.failed,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m backup",
        description="Back up MongoDB to Azure Blob Storage and restore it.",
    )
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--log-format", choices=("json", "console"), default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    def common(p: argparse.ArgumentParser, *, mongo: bool = True) -> None:
        if mongo:
            p.add_argument("--mongo-uri", help="MongoDB connection URI")
        p.add_argument("--storage-account", help="Azure storage account name")
        p.add_argument("--server", dest="server_name", help="Server label used in blob names")
        p.add_argument("--container", help="Blob container (default: mongodbbackup)")

    backup_p = sub.add_parser(BackupOperation.backup.value, help="dump every unit and upload it")
    common(backup_p)
    backup_p.add_argument("--mode", choices=[mode.value for mode in UnitMode], default=None)
    backup_p.add_argument("--retention-days", type=int, default=None)
    backup_p.add_argument("--max-attempts", dest="retry_max_attempts", type=int, default=None)
    backup_p.add_argument("--backoff", dest="retry_backoff_seconds", type=float, default=None)
    backup_p.add_argument("--gzip", action="store_true", default=None)

    restore_p = sub.add_parser(BackupOperation.restore.value, help="download a snapshot and load it")
    common(restore_p)
    restore_p.add_argument("--timestamp", required=True, help="snapshot timestamp, YYYY-MM-DD-HH-MM-SS")

    list_p = sub.add_parser(BackupOperation.list.value, help="list stored snapshots of a server")
    common(list_p, mongo=False)
    return parser


_OVERRIDES = (
    "mongo_uri",
    "storage_account",
    "server_name",
    "container",
    "mode",
    "retention_days",
    "retry_max_attempts",
    "retry_backoff_seconds",
    "gzip",
    "log_level",
    "log_format",
)


def settings_from_args(args: argparse.Namespace, base: BackupSettings | None = None) -> BackupSettings:
    """Return ``base`` with every flag given on the command line applied.

    Values are validated again so that flags obey the same constraints as
    environment variables.
    """

    base = base or get_settings()
    update: dict[str, Any] = {}
    for name in _OVERRIDES:
        value = getattr(args, name, None)
        if value is not None:
            update[name] = value
    merged = base.model_dump()
    merged.update(update)
    try:
        return BackupSettings.model_validate(merged)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


def _print_restore_summary(report: RestoreReport) -> None:
    for unit in report.units:
        line = f"{unit.status.value:<9} {unit.label}"
        if unit.error:
            line += f"  ({unit.error})"
        print(line)
    ok = report.count(UnitStatus.succeeded)
    print(f"restore {report.status.value}: {ok}/{len(report.units)} units restored from {report.remote_root}")


def run(args: argparse.Namespace, orchestrator: BackupOrchestrator) -> ExitCode:
    command = BackupOperation(args.command)
    if command is BackupOperation.list:
        for snapshot in orchestrator.list_snapshots():
            print(snapshot.timestamp)
        return ExitCode.ok

    if command is BackupOperation.backup:
        report = orchestrator.run_backup()
        print(f"backup {report.status.value}: {len(report.units)} units under {report.remote_root}")
        return _STATUS_EXIT[report.status]

    report = orchestrator.run_restore(args.timestamp)
    _print_restore_summary(report)
    return _STATUS_EXIT[report.status]


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        config = settings_from_args(args)
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return ExitCode.usage
    configure_logging(config.log_level, config.log_format)

    orchestrator = BackupOrchestrator(config)
    try:
        if args.command == BackupOperation.backup.value:
            check_binaries(config.dump_binary)
        elif args.command == BackupOperation.restore.value:
            check_binaries(config.restore_binary)
        return run(args, orchestrator)
    except ConfigurationError as exc:
        logger.error("configuration_error", error=str(exc))
        print(f"configuration error: {exc}", file=sys.stderr)
        return ExitCode.usage
    except BackupError as exc:
        logger.error("run_failed", command=args.command, error=str(exc))
        print(f"{args.command} failed: {exc}", file=sys.stderr)
        return ExitCode.failed
    finally:
        orchestrator.close()
