from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .annotator import AnnotatedDiff
from .comments import REVIEW_STATES, CommentIndex, Review
from .context import PullRequestContext


@dataclass(frozen=True)
class SummaryReport:
    files_changed: int = 0
    inline_comments: int = 0
    attached_comments: int = 0
    orphaned_comments: int = 0
    not_in_diff_comments: int = 0
    general_comments: int = 0
    reviews: int = 0
    review_states: dict[str, int] = field(default_factory=dict)
    changed_files: tuple[str, ...] = ()


def iso_local_now() -> str:
    return dt.datetime.now().astimezone().replace(microsecond=0).isoformat()


def summarize(
    annotated: AnnotatedDiff | None,
    comment_index: CommentIndex | None,
    reviews: Sequence[Review] | None,
) -> SummaryReport:
    changed_files: tuple[str, ...] = ()
    attached = orphaned = not_in_diff = 0
    if annotated is not None:
        changed_files = tuple(annotated.diff.changed_paths)
        attached = annotated.attached_comment_count()
        orphaned = annotated.orphaned_comment_count()
        not_in_diff = annotated.not_in_diff_comment_count()
    elif comment_index is not None:
        not_in_diff = comment_index.comment_count

    states = {state: 0 for state in REVIEW_STATES}
    for review in reviews or ():
        states[review.state] = states.get(review.state, 0) + 1

    return SummaryReport(
        files_changed=len(changed_files),
        inline_comments=attached + orphaned + not_in_diff,
        attached_comments=attached,
        orphaned_comments=orphaned,
        not_in_diff_comments=not_in_diff,
        general_comments=len(comment_index.general_comments) if comment_index is not None else 0,
        reviews=len(reviews or ()),
        review_states={state: count for state, count in states.items() if count},
        changed_files=changed_files,
    )


def render_summary_text(
    report: SummaryReport,
    context: PullRequestContext,
    *,
    document_path: str,
    summary_name: str,
    generated_at: str | None = None,
) -> str:
    document_name = document_path.replace("\\", "/").rsplit("/", 1)[-1]
    title = f"PR #{context.number} Export Summary"
    lines = [
        title,
        "=" * len(title),
        f"Repository: {context.repository}",
        f"PR Title: {context.title}",
        f"Author: @{context.author}",
        f"State: {context.state}",
        f"Base: {context.base_branch} → Head: {context.head_branch}",
    ]
    if context.base_override:
        lines.append(f"Base Override: Used '{context.base_override}' instead of PR default '{context.pr_base_branch}'")
    lines.extend(
        [
            f"Diff Command: {context.diff_command}",
            "",
            "Files generated:",
            f"  - Main output: {document_name}",
            f"  - Summary: {summary_name}",
            "",
            "Statistics:",
            f"  - Inline comments: {report.inline_comments}",
            f"    - attached to diff lines: {report.attached_comments}",
            f"    - orphaned (anchor not in current diff): {report.orphaned_comments}",
            f"    - on files not in diff: {report.not_in_diff_comments}",
            f"  - General comments: {report.general_comments}",
            f"  - Reviews: {report.reviews}",
        ]
    )
    for state, count in report.review_states.items():
        lines.append(f"    - {state}: {count}")
    lines.append(f"  - Changed files: {report.files_changed}")
    for path in report.changed_files:
        lines.append(f"    - {path}")
    lines.extend(
        [
            "",
            "To view the annotated diff:",
            f"  less '{document_path}'",
            "",
            f"Generated at: {generated_at or iso_local_now()}",
        ]
    )
    return "\n".join(lines) + "\n"


def render_summary_panel(console: Console, report: SummaryReport, context: PullRequestContext) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()
    table.add_row("Repository", Text(context.repository))
    table.add_row("Title", Text(context.title))
    table.add_row("Base", Text(f"{context.base_branch} -> {context.head_branch}"))
    table.add_row("Changed files", str(report.files_changed))
    table.add_row("Inline comments", str(report.inline_comments))
    table.add_row("  attached", str(report.attached_comments))
    table.add_row("  orphaned", str(report.orphaned_comments))
    table.add_row("  not in diff", str(report.not_in_diff_comments))
    table.add_row("General comments", str(report.general_comments))
    reviews = str(report.reviews)
    if report.review_states:
        reviews += " (" + ", ".join(f"{state}={count}" for state, count in report.review_states.items()) + ")"
    table.add_row("Reviews", reviews)
    console.print(Panel(table, title=f"PR #{context.number} Export Summary", border_style="blue"))
