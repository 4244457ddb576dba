"""Wrappers around the ``mongodump`` and ``mongorestore`` command-line tools."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

import structlog

from .errors import ConfigurationError
from .naming import BackupUnit


logger = structlog.get_logger(__name__)


@dataclass(slots=True, frozen=True)
class ToolResult:
    """Outcome of one external tool invocation."""

    ok: bool
    returncode: int | None
    stderr: str
    command: tuple[str, ...]

    @property
    def diagnostic(self) -> str:
        if self.ok:
            return ""
        tail = self.stderr.strip().splitlines()[-5:]
        detail = " | ".join(tail) if tail else "no output"
        return f"exit={self.returncode}: {detail}"


def _redact(cmd: Sequence[str]) -> tuple[str, ...]:
    return tuple("--uri=***" if arg.startswith("--uri=") else arg for arg in cmd)


def run_tool(cmd: Sequence[str], *, timeout: float | None = None) -> ToolResult:
    """Run ``cmd`` to completion and return a typed result instead of raising."""

    shown = _redact(cmd)
    try:
        completed = subprocess.run(
            list(cmd),
            check=False,
            capture_output=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        return ToolResult(False, None, f"{cmd[0]}_not_found", shown)
    except subprocess.TimeoutExpired:
        return ToolResult(False, None, f"{cmd[0]}_timeout after {timeout}s", shown)
    stderr = (completed.stderr or b"").decode("utf-8", errors="ignore")
    return ToolResult(completed.returncode == 0, completed.returncode, stderr, shown)


def dump_command(
    binary: str,
    uri: str,
    output_dir: Path,
    unit: BackupUnit,
    *,
    gzip: bool = False,
) -> list[str]:
    cmd = [binary, f"--uri={uri}"]
    if not unit.is_instance:
        cmd += [f"--db={unit.database}", f"--collection={unit.collection}"]
    cmd.append(f"--out={output_dir}")
    if gzip:
        cmd.append("--gzip")
    return cmd


def restore_command(
    binary: str,
    uri: str,
    input_path: Path,
    unit: BackupUnit,
    *,
    write_concern: str | None = "{w:0}",
    gzip: bool = False,
) -> list[str]:
    cmd = [binary, f"--uri={uri}"]
    if not unit.is_instance:
        cmd += [f"--db={unit.database}", f"--collection={unit.collection}"]
    if write_concern:
        cmd.append(f"--writeConcern={write_concern}")
    if gzip:
        cmd.append("--gzip")
    cmd.append(str(input_path))
    return cmd


DumpFn = Callable[[BackupUnit, Path], ToolResult]
LoadFn = Callable[[BackupUnit, Path], ToolResult]


@dataclass(slots=True)
class MongoTools:
    """Binds connection and tool options so callers only pass the unit."""

    uri: str
    dump_binary: str = "mongodump"
    restore_binary: str = "mongorestore"
    gzip: bool = False
    write_concern: str | None = "{w:0}"
    timeout: float | None = None
    runner: Callable[..., ToolResult] = run_tool

    def dump(self, unit: BackupUnit, output_dir: Path) -> ToolResult:
        cmd = dump_command(self.dump_binary, self.uri, output_dir, unit, gzip=self.gzip)
        logger.debug("mongodump_start", unit=unit.label, out=str(output_dir))
        return self.runner(cmd, timeout=self.timeout)

    def load(self, unit: BackupUnit, input_path: Path) -> ToolResult:
        gzip = input_path.name.endswith(".gz")
        cmd = restore_command(
            self.restore_binary,
            self.uri,
            input_path,
            unit,
            write_concern=self.write_concern,
            gzip=gzip,
        )
        logger.debug("mongorestore_start", unit=unit.label, path=str(input_path))
        return self.runner(cmd, timeout=self.timeout)


def check_binaries(*binaries: str) -> None:
    """Raise :class:`ConfigurationError` if any of ``binaries`` is not on ``PATH``."""

    missing = [name for name in binaries if shutil.which(name) is None]
    if missing:
        raise ConfigurationError(f"binaries_not_found: {', '.join(missing)}")
