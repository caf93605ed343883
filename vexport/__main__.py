"""Command-line export: ``python -m vexport JOB.json [--debug] [--output PATH]``."""

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from vexport.exceptions import VexportError
from vexport.render.pipeline import export_video
from vexport.schemas.export import ExportJobOptions

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )


def load_job(path: str, output: str | None = None, debug: bool = False) -> ExportJobOptions:
    """Read an ExportJobOptions JSON file (camelCase or snake_case keys)."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if output:
        data["outputPath"] = output
        data.pop("output_path", None)
    if debug:
        data["debug"] = True
    return ExportJobOptions.model_validate(data)


def print_progress(percent: int) -> None:
    print(f"\rExporting... {percent:3d}%", end="", flush=True)
    if percent >= 100:
        print()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="vexport", description="Render an export job to a video file")
    parser.add_argument("job", help="Path to the export job JSON file")
    parser.add_argument("--output", help="Override the job's output path")
    parser.add_argument("--debug", action="store_true", help="Keep intermediate files and an ffmpeg command log")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    try:
        options = load_job(args.job, output=args.output, debug=args.debug)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        print(f"Invalid job file: {e}", file=sys.stderr)
        return 2

    try:
        result = export_video(options, on_progress=print_progress)
    except VexportError as e:
        print(f"\nExport failed: {e.message}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.debug("[CLI] Unexpected export failure", exc_info=True)
        print(f"\nExport failed: {e}", file=sys.stderr)
        return 1

    print(f"Exported {options.output_path}")
    if result.debug_bundle_path:
        print(f"Debug bundle: {result.debug_bundle_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
