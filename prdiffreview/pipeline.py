from __future__ import annotations

import os
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from . import git_ops, github
from .annotator import AnnotatedDiff, annotate
from .comments import CommentIndex, index_comments
from .console import StatusReporter
from .context import PullRequestContext
from .diff_parser import parse_diff
from .errors import CommandError
from .render import document_filename, render, resolve_format, summary_filename
from .summary import SummaryReport, render_summary_text, summarize


@dataclass(frozen=True)
class ExportRequest:
    number: int
    output_dir: Path = Path(".")
    fmt: str = "txt"
    base_override: str | None = None
    context_lines: int = 3
    max_workers: int = 4
    remote: str = "origin"
    repo: Path = Path(".")


@dataclass(frozen=True)
class BuiltDocuments:
    document: str
    report: SummaryReport
    annotated: AnnotatedDiff
    comment_index: CommentIndex


@dataclass(frozen=True)
class ExportResult:
    context: PullRequestContext
    document_path: Path
    summary_path: Path
    report: SummaryReport
    warnings: tuple[str, ...]


def build_documents(
    diff_text: str,
    inline: Sequence[Any] | None,
    general: Sequence[Any] | None,
    reviews: Sequence[Any] | None,
    context: PullRequestContext,
    fmt: str,
) -> BuiltDocuments:
    """Parse, index, annotate and render one pull request.

    Parsing and indexing run side by side and annotation waits for both.
    Rendering and summarizing then run side by side on the annotated diff.
    """
    fmt = resolve_format(fmt)
    with ThreadPoolExecutor(max_workers=2) as pool:
        parsed = pool.submit(parse_diff, diff_text)
        indexed = pool.submit(index_comments, inline, general, reviews)
        diff_model = parsed.result()
        comment_index = indexed.result()

        annotated = annotate(diff_model, comment_index)

        rendered = pool.submit(
            render, annotated, context, comment_index.general_comments, comment_index.reviews, fmt
        )
        summarized = pool.submit(summarize, annotated, comment_index, comment_index.reviews)
        return BuiltDocuments(
            document=rendered.result(),
            report=summarized.result(),
            annotated=annotated,
            comment_index=comment_index,
        )


def write_outputs(files: dict[str, str], output_dir: Path) -> list[Path]:
    """Write every file to a staging directory, then move them into place."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    # Staged beside the destination so os.replace never crosses filesystems.
    with tempfile.TemporaryDirectory(prefix=".prdiffreview-", dir=output_dir) as staging:
        staged: list[tuple[Path, Path]] = []
        for name, content in files.items():
            path = Path(staging) / name
            path.write_text(content, encoding="utf-8", newline="\n")
            staged.append((path, output_dir / name))
        for source, target in staged:
            os.replace(source, target)
            written.append(target)
    return written


def run_export(request: ExportRequest, reporter: StatusReporter) -> ExportResult:
    fmt = resolve_format(request.fmt)
    repo = request.repo

    reporter.verbose("Checking dependencies")
    github.check_dependencies()

    repo_info = github.fetch_repo_info()
    pr_info = github.fetch_pr_info(request.number)
    context = PullRequestContext.from_payloads(
        request.number,
        repo_info,
        pr_info,
        base_override=request.base_override,
        remote=request.remote,
    )
    reporter.info(f"Repository: {context.repository}")
    reporter.info(f"PR #{context.number}: {context.title}")
    if context.base_override:
        reporter.warning(
            f"Using override base branch '{context.base_override}' instead of PR base '{context.pr_base_branch}'"
        )

    try:
        git_ops.fetch_origin(repo, context.remote)
    except CommandError as error:
        reporter.warning(f"Failed to fetch from {context.remote}: {error.stderr or error}")
    if git_ops.ensure_remote_ref(repo, context.base_branch, context.remote):
        reporter.verbose(f"Fetched {context.remote}/{context.base_branch}")

    with ThreadPoolExecutor(max_workers=request.max_workers) as pool:
        inline_future = pool.submit(github.fetch_inline_comments, context.repository, context.number)
        general_future = pool.submit(github.fetch_general_comments, context.repository, context.number)
        reviews_future = pool.submit(github.fetch_reviews, context.repository, context.number)

        with git_ops.checked_out(repo, context.number, context.head_branch, warn=reporter.warning) as original:
            reporter.verbose(f"Checked out PR #{context.number} (was {original or 'unknown'})")
            reporter.verbose(f"Running: {context.diff_command}")
            diff_text = git_ops.generate_diff(
                repo, context.base_branch, context_lines=request.context_lines, remote=context.remote
            )

        inline = inline_future.result()
        general = general_future.result()
        reviews = reviews_future.result()
    reporter.verbose(f"Fetched {len(inline)} inline comments, {len(general)} general comments, {len(reviews)} reviews")

    built = build_documents(diff_text, inline, general, reviews, context, fmt)
    warnings = list(built.annotated.warnings)
    if built.annotated.is_empty:
        warnings.insert(0, f"No changes found between {context.remote}/{context.base_branch} and HEAD")

    document_name = document_filename(context.number, fmt)
    summary_name = summary_filename(context.number)
    output_dir = request.output_dir
    summary_text = render_summary_text(
        built.report,
        context,
        document_path=str(output_dir / document_name),
        summary_name=summary_name,
    )
    write_outputs({document_name: built.document, summary_name: summary_text}, output_dir)

    return ExportResult(
        context=context,
        document_path=output_dir / document_name,
        summary_path=output_dir / summary_name,
        report=built.report,
        warnings=tuple(warnings),
    )
