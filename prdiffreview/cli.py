from __future__ import annotations

import argparse
import sys
from pathlib import Path

from rich.console import Console

from .config import apply_overrides, resolve_config
from .console import StatusReporter
from .errors import PRReviewError
from .pipeline import ExportRequest, run_export
from .render import resolve_format
from .summary import render_summary_panel

EPILOG = """\
examples:
  prdiffreview 123                  export PR #123 as text into the current directory
  prdiffreview 123 -o ./reviews     export into ./reviews
  prdiffreview 123 -f md            export as markdown
  prdiffreview 123 -f html -b main  export as HTML, diffing against origin/main
"""


class _ArgumentParser(argparse.ArgumentParser):
    # Usage errors are fatal errors like any other: exit status 1.
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"[error] {message}\n")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = _ArgumentParser(
        prog="prdiffreview",
        description="Export a GitHub pull request diff annotated with its review comments.",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("pr_number", help="Pull request number.")
    parser.add_argument("-o", "--output", default=None, help="Output directory (default: current directory).")
    parser.add_argument("-f", "--format", default=None, help="Output format: txt (or text), md (or markdown) or html (default: txt).")
    parser.add_argument("-b", "--base", default=None, help="Base branch to diff against (default: the PR base).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Print progress details.")
    parser.add_argument("--config", default=None, help="TOML config file (default: ./.prdiffreview.toml if present).")
    return parser.parse_args(argv)


def parse_pr_number(value: str) -> int:
    text = str(value).strip().lstrip("#")
    if not text.isdigit() or int(text) < 1:
        raise PRReviewError(f"Invalid PR number: {value}")
    return int(text)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    reporter = StatusReporter(verbose=args.verbose)

    try:
        if args.format is not None:
            resolve_format(args.format)
        config = resolve_config(args.config)
        config = apply_overrides(config, output_dir=args.output, format=args.format)
        fmt = resolve_format(config.format)
        number = parse_pr_number(args.pr_number)
        request = ExportRequest(
            number=number,
            output_dir=Path(config.output_dir),
            fmt=fmt,
            base_override=args.base,
            context_lines=config.context_lines,
            max_workers=config.max_workers,
            remote=config.remote,
        )
        result = run_export(request, reporter)
    except KeyboardInterrupt:
        reporter.error("Interrupted.")
        return 1
    except (PRReviewError, OSError) as error:
        reporter.error(str(error))
        return 1

    for warning in result.warnings:
        reporter.warning(warning)
    reporter.success(f"Annotated diff exported to: {result.document_path}")
    reporter.success(f"Summary written to: {result.summary_path}")
    render_summary_panel(Console(), result.report, result.context)
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
