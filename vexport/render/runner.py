"""FFmpeg process wrapper with an optional command/output log.

Every invocation is a blocking ``subprocess.run`` with both pipes captured.
``communicate()`` drains stdout and stderr concurrently, so the continuous
progress chatter ffmpeg writes on long encodes cannot fill a pipe and stall
the process. Callers in async code wrap ``run`` in ``asyncio.to_thread``.
"""

import logging
import shlex
import subprocess
from pathlib import Path

from vexport.exceptions import ProcessError

logger = logging.getLogger(__name__)


class FFmpegRunner:
    """Runs ffmpeg and, when a debug log is set, records every command and its output."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", debug_log_path: str | Path | None = None):
        self.ffmpeg_path = ffmpeg_path
        self.debug_log_path = Path(debug_log_path) if debug_log_path else None
        self.commands: list[str] = []

    def append_debug(self, label: str, payload: str) -> None:
        """Append a ``=== label ===`` block to the debug log (no-op without one)."""
        if self.debug_log_path is None:
            return
        with open(self.debug_log_path, "a", encoding="utf-8") as f:
            f.write(f"\n\n=== {label} ===\n{payload}\n")

    def build_command(self, args: list[str]) -> list[str]:
        return [self.ffmpeg_path, "-y", *args]

    def run(self, label: str, args: list[str]) -> subprocess.CompletedProcess:
        """Run ffmpeg with ``args``.

        Args:
            label: Short step name used in logs (e.g. "segment-0", "concat")
            args: Arguments after the binary; ``-y`` is always prepended

        Returns:
            The completed process (stdout/stderr as text)

        Raises:
            ProcessError: If ffmpeg could not be started or exited non-zero
        """
        cmd = self.build_command(args)
        command_line = shlex.join(cmd)
        self.commands.append(command_line)
        self.append_debug(f"{label} command", command_line)
        logger.debug(f"[FFMPEG] {label}: {command_line}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            self.append_debug(f"{label} error", str(e))
            raise ProcessError(label, None, stderr=str(e)) from e

        if result.stdout:
            self.append_debug(f"{label} stdout", result.stdout)
        if result.stderr:
            self.append_debug(f"{label} stderr", result.stderr)

        if result.returncode != 0:
            error = ProcessError(label, result.returncode, result.stdout, result.stderr)
            self.append_debug(f"{label} error", error.message)
            logger.error(f"[FFMPEG] {label} failed with status {result.returncode}")
            raise error

        return result
