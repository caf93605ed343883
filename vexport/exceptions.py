"""Custom exceptions for the vexport engine.

Every error carries a machine-readable code alongside the human message so a
caller (UI, CLI) can decide how to present it.
"""

from pathlib import Path


class VexportError(Exception):
    """Base exception for all vexport errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None, *, code: str | None = None):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        """Serialize for logging or IPC."""
        return {"code": self.code, "message": self.message}


# =============================================================================
# External process errors
# =============================================================================


class ProcessError(VexportError):
    """An external tool exited with a non-zero status."""

    code = "PROCESS_FAILED"
    message = "External process failed"

    def __init__(
        self,
        label: str,
        returncode: int | None,
        stdout: str = "",
        stderr: str = "",
    ):
        self.label = label
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        tail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"{label} exited with status {returncode}: {tail}")


# =============================================================================
# Export errors (fatal, surface to the caller)
# =============================================================================


class ExportError(VexportError):
    """Base class for errors that abort an export job."""

    code = "EXPORT_FAILED"
    message = "Export failed"


class NoClipsError(ExportError):
    """The job has nothing on the visual track."""

    code = "NO_CLIPS"
    message = "No clips to export"


class SegmentEncodeError(ExportError):
    """The transcoder failed while normalizing one clip."""

    code = "SEGMENT_ENCODE_FAILED"
    message = "Failed to encode segment"

    def __init__(self, index: int, file_path: str, detail: str = ""):
        self.index = index
        self.file_path = file_path
        self.detail = detail
        message = f"Failed to encode segment {index} ({Path(file_path).name})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class SegmentMissingError(ExportError):
    """The transcoder reported success but wrote no segment file."""

    code = "SEGMENT_MISSING"
    message = "Segment was not created"

    def __init__(self, index: int, file_path: str):
        self.index = index
        self.file_path = file_path
        super().__init__(
            f"Segment {index} was not created: ffmpeg produced no output for \"{Path(file_path).name}\""
        )


class ConcatError(ExportError):
    """Joining the segments failed."""

    code = "CONCAT_FAILED"
    message = "Failed to concatenate segments"

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)


class FinalEncodeError(ExportError):
    """The filtered final encode failed; carries the raw engine diagnostics."""

    code = "FINAL_ENCODE_FAILED"
    message = "Final encoding failed"

    def __init__(self, stderr: str = ""):
        self.stderr = stderr
        super().__init__(f"{self.message}: {stderr}" if stderr else self.message)


# =============================================================================
# Recovered errors (never reach the caller)
# =============================================================================


class FontResolutionError(VexportError):
    """A font family/weight could not be downloaded from any source."""

    code = "FONT_RESOLUTION_FAILED"
    message = "Could not download font"

    def __init__(self, family: str, weight: int):
        self.family = family
        self.weight = weight
        super().__init__(f"Could not download TTF for \"{family}\" weight {weight}")
