from __future__ import annotations

import logging
import re
import shutil
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Optional

from blindsolve.errors import (
    ExecutableNotFound,
    LocalTimeout,
    PollExhausted,
    SolveCancelled,
    SolverReportedFailure,
)
from .header import parse_header_block
from .polling import CancellationToken, poll_until
from .types import HeaderBlock

logger = logging.getLogger(__name__)

DEFAULT_ASTAP_TIMEOUT_S = 180.0
DEFAULT_ARTIFACT_WAIT_S = 180.0
DEFAULT_ARTIFACT_POLL_S = 5.0
PROCESS_POLL_S = 0.25
TERMINATE_GRACE_S = 5.0
MACOS_BUNDLE_EXECUTABLE = Path("Contents") / "MacOS" / "ASTAP"

_PLTSOLVD_RE = re.compile(r"PLTSOLVD\s*=\s*(\w)", re.IGNORECASE)


def _summarize_astap_failure(stdout: str, stderr: str) -> str:
    text = stdout.strip() or stderr.strip()
    if not text:
        return "Unknown error"
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    priority = [
        "Only 0 stars found",
        "No solution found",
        "Old database",
        "not enough stars",
        "Error",
    ]
    for p in priority:
        for line in lines:
            if p in line:
                return line
    return lines[-1]


def resolve_executable(path: str | Path, platform: str) -> Path:
    """Return the runnable ASTAP binary for a configured path.

    On macOS the user usually points at ``ASTAP.app``; the binary lives
    inside the bundle.
    """
    exe = Path(path).expanduser()
    if platform == "darwin" and exe.suffix.lower() == ".app":
        exe = exe / MACOS_BUNDLE_EXECUTABLE
        logger.info(f"Adjusted ASTAP path for macOS: {exe}")
    if not exe.is_file():
        raise ExecutableNotFound(str(exe))
    return exe


def read_pltsolvd(ini_text: str) -> Optional[bool]:
    m = _PLTSOLVD_RE.search(ini_text)
    if not m:
        return None
    return m.group(1).upper() != "F"


def _terminate(proc: subprocess.Popen) -> tuple[str, str]:
    proc.terminate()
    try:
        return proc.communicate(timeout=TERMINATE_GRACE_S)
    except subprocess.TimeoutExpired:
        proc.kill()
        return proc.communicate()


class AstapSolver:
    """Runs a user-configured ASTAP binary against one image file."""

    def __init__(
        self,
        executable: str | Path,
        *,
        platform: str = sys.platform,
        timeout_s: float = DEFAULT_ASTAP_TIMEOUT_S,
        artifact_wait_s: float = DEFAULT_ARTIFACT_WAIT_S,
        artifact_poll_s: float = DEFAULT_ARTIFACT_POLL_S,
        search_radius_deg: float = 179,
        fov_deg: float = 0,
        downsample: int = 0,
    ):
        self.executable = executable
        self.platform = platform
        self.timeout_s = timeout_s
        self.artifact_wait_s = artifact_wait_s
        self.artifact_poll_s = artifact_poll_s
        self.search_radius_deg = search_radius_deg
        self.fov_deg = fov_deg
        self.downsample = downsample

    def build_command(self, exe: Path, image_path: Path) -> list[str]:
        return [
            str(exe),
            "-f",
            str(image_path),
            "-r",
            f"{self.search_radius_deg:g}",
            "-fov",
            f"{self.fov_deg:g}",
            "-z",
            str(int(self.downsample)),
            "-wcs",
        ]

    def solve(
        self, image_path: str | Path, cancel: Optional[CancellationToken] = None
    ) -> HeaderBlock:
        cancel = cancel or CancellationToken()
        exe = resolve_executable(self.executable, self.platform)
        source = Path(image_path)

        with tempfile.TemporaryDirectory(prefix="blindsolve_astap_") as tmpdir:
            work_image = Path(tmpdir) / source.name
            shutil.copy2(source, work_image)
            cmd = self.build_command(exe, work_image)
            self._run(cmd, cwd=exe.parent, cancel=cancel)
            wcs_text = self._wait_for_artifacts(work_image, cancel)

        return parse_header_block(wcs_text)

    def _run(self, cmd: list[str], *, cwd: Path, cancel: CancellationToken) -> int:
        logger.info(f"Running ASTAP: {' '.join(cmd)}")
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        deadline = time.monotonic() + self.timeout_s
        while True:
            if cancel.cancelled:
                _terminate(proc)
                raise SolveCancelled("ASTAP run cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                stdout, stderr = _terminate(proc)
                logger.debug(f"ASTAP output before timeout: {stdout or stderr}")
                raise LocalTimeout(
                    f"ASTAP did not finish within {self.timeout_s:g}s; process terminated"
                )
            try:
                stdout, stderr = proc.communicate(timeout=min(PROCESS_POLL_S, remaining))
                break
            except subprocess.TimeoutExpired:
                continue

        if stdout:
            logger.debug(f"ASTAP stdout: {stdout.strip()}")
        if stderr:
            logger.debug(f"ASTAP stderr: {stderr.strip()}")
        if proc.returncode != 0:
            # ASTAP exits non-zero when it finds no solution; the .ini says so.
            reason = _summarize_astap_failure(stdout or "", stderr or "")
            logger.warning(f"ASTAP exited with code {proc.returncode}: {reason}")
        return proc.returncode

    def _wait_for_artifacts(self, work_image: Path, cancel: CancellationToken) -> str:
        wcs_path = work_image.with_suffix(".wcs")
        ini_path = work_image.with_suffix(".ini")

        def check(attempt: int) -> Optional[str]:
            if wcs_path.exists():
                logger.info(f"ASTAP .wcs file found: {wcs_path}")
                text = wcs_path.read_text(encoding="ascii", errors="replace")
                if ini_path.exists():
                    ini_path.unlink()
                return text
            if ini_path.exists():
                ini_text = ini_path.read_text(encoding="ascii", errors="replace")
                solved = read_pltsolvd(ini_text)
                if solved is False:
                    ini_path.unlink()
                    raise SolverReportedFailure("ASTAP solve failed according to .ini file")
                if solved is None:
                    logger.warning("PLTSOLVD keyword not found in ASTAP .ini file")
            return None

        max_attempts = 1 + int(self.artifact_wait_s // self.artifact_poll_s) if self.artifact_poll_s > 0 else 1
        try:
            return poll_until(
                check,
                interval_s=self.artifact_poll_s,
                max_attempts=max_attempts,
                cancel=cancel,
                describe="ASTAP artifacts",
            )
        except PollExhausted:
            raise LocalTimeout(
                f"ASTAP produced neither .wcs nor a failed .ini within {self.artifact_wait_s:g}s"
            )

    def is_available(self) -> dict:
        try:
            exe = resolve_executable(self.executable, self.platform)
        except ExecutableNotFound:
            return {"ok": False, "detail": "not found"}
        try:
            result = subprocess.run(
                [str(exe), "-h"],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=3,
            )
        except subprocess.TimeoutExpired:
            return {"ok": False, "detail": "timeout"}
        except OSError as e:
            return {"ok": False, "detail": f"cannot execute: {e}"}
        if result.returncode == 0:
            return {"ok": True, "detail": "responds to -h"}
        return {"ok": False, "detail": "returned non-zero"}
