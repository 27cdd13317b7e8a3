from __future__ import annotations

import re
from dataclasses import dataclass
from html import escape
from typing import Callable, Iterable, Sequence

from .annotator import REASON_OUTDATED, AnnotatedDiff, AnnotatedFile
from .comments import Comment, GeneralComment, Review, Thread
from .context import PullRequestContext
from .diff_parser import OP_ADDED, OP_REMOVED, STATUS_BINARY, STATUS_RENAMED, DiffModel
from .errors import UnsupportedFormatError

FORMAT_TEXT = "text"
FORMAT_MARKDOWN = "markdown"
FORMAT_HTML = "html"

FORMAT_ALIASES = {
    "txt": FORMAT_TEXT,
    "text": FORMAT_TEXT,
    "md": FORMAT_MARKDOWN,
    "markdown": FORMAT_MARKDOWN,
    "html": FORMAT_HTML,
}
FORMAT_EXTENSIONS = {FORMAT_TEXT: "txt", FORMAT_MARKDOWN: "md", FORMAT_HTML: "html"}

KIND_INLINE = "inline"
KIND_REPLY = "reply"
KIND_GENERAL = "general"
KIND_REVIEW = "review"

ORPHANED_TITLE = "Orphaned comments — anchor not present in current diff"
NO_CHANGES = "No changes found"


def resolve_format(fmt: str) -> str:
    key = str(fmt or "").strip().lower()
    if key not in FORMAT_ALIASES:
        raise UnsupportedFormatError(str(fmt), tuple(FORMAT_EXTENSIONS.values()))
    return FORMAT_ALIASES[key]


def document_filename(number: int, fmt: str) -> str:
    return f"pr_{number}_annotated_diff.{FORMAT_EXTENSIONS[resolve_format(fmt)]}"


def summary_filename(number: int) -> str:
    return f"pr_{number}_summary.txt"


# Logical content blocks. Every writer receives the same sequence.


@dataclass(frozen=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True)
class Field:
    label: str
    value: str


@dataclass(frozen=True)
class Paragraph:
    text: str


@dataclass(frozen=True)
class Notice:
    text: str


@dataclass(frozen=True)
class Preformatted:
    lines: tuple[str, ...]


@dataclass(frozen=True)
class FileHeader:
    path: str
    status: str
    old_path: str | None
    header_lines: tuple[str, ...]


@dataclass(frozen=True)
class HunkHeader:
    text: str


@dataclass(frozen=True)
class CodeLine:
    op: str
    marker: str
    text: str
    old_line: int | None
    new_line: int | None
    eof_marker: str | None = None


@dataclass(frozen=True)
class CommentEntry:
    kind: str
    author: str
    created_at: str
    body: str
    location: str | None = None
    state: str | None = None
    note: str | None = None


Block = Heading | Field | Paragraph | Notice | Preformatted | FileHeader | HunkHeader | CodeLine | CommentEntry

CODE_BLOCKS = (HunkHeader, CodeLine)


def diffstat_lines(model: DiffModel, *, bar_width: int = 40) -> list[str]:
    if model.is_empty:
        return []
    names: list[str] = []
    for diff_file in model.files:
        if diff_file.status == STATUS_RENAMED and diff_file.old_path and diff_file.old_path != diff_file.new_path:
            names.append(f"{diff_file.old_path} => {diff_file.new_path}")
        else:
            names.append(diff_file.path)
    name_width = max(len(name) for name in names)
    totals = [diff_file.additions + diff_file.deletions for diff_file in model.files]
    count_width = max(len(str(total)) for total in totals)
    largest = max(totals)

    out: list[str] = []
    for name, diff_file, total in zip(names, model.files, totals):
        if diff_file.status == STATUS_BINARY:
            out.append(f" {name.ljust(name_width)} | Bin")
            continue
        adds, dels = diff_file.additions, diff_file.deletions
        if largest > bar_width:
            adds = (adds * bar_width + largest - 1) // largest if adds else 0
            dels = (dels * bar_width + largest - 1) // largest if dels else 0
        out.append(f" {name.ljust(name_width)} | {str(total).rjust(count_width)} {'+' * adds}{'-' * dels}".rstrip())

    file_count = len(model.files)
    insertions = sum(diff_file.additions for diff_file in model.files)
    deletions = sum(diff_file.deletions for diff_file in model.files)
    summary = f" {file_count} file{'s' if file_count != 1 else ''} changed"
    if insertions:
        summary += f", {insertions} insertion{'s' if insertions != 1 else ''}(+)"
    if deletions:
        summary += f", {deletions} deletion{'s' if deletions != 1 else ''}(-)"
    out.append(summary)
    return out


def _line_location(comment: Comment) -> str:
    if comment.line is None:
        if comment.original_line is not None:
            return f"outdated, originally {comment.side} line {comment.original_line}"
        return "outdated"
    if comment.start_line is not None and comment.start_line < comment.line:
        return f"{comment.side} lines {comment.start_line}-{comment.line}"
    return f"{comment.side} line {comment.line}"


def _thread_entries(thread: Thread, *, with_path: bool, outside_diff: bool = False) -> list[CommentEntry]:
    root = thread.root
    location = _line_location(root)
    if with_path:
        location = f"{root.path or '(no path)'}, {location}"
    if outside_diff:
        location += " (not in current diff)"
    note = "reply to a comment that is no longer available" if root.reply_to is not None else None
    entries = [
        CommentEntry(
            kind=KIND_INLINE,
            author=root.author,
            created_at=root.created_at,
            body=root.body,
            location=location,
            note=note,
        )
    ]
    for reply in thread.replies:
        entries.append(CommentEntry(kind=KIND_REPLY, author=reply.author, created_at=reply.created_at, body=reply.body))
    return entries


def _header_blocks(context: PullRequestContext) -> list[Block]:
    blocks: list[Block] = [
        Heading(1, f"Pull Request #{context.number} Annotated Diff"),
        Field("Repository", context.repository),
        Field("Title", context.title),
        Field("Author", f"@{context.author}"),
        Field("Created", context.created_at),
        Field("Updated", context.updated_at),
        Field("State", context.state),
        Field("Mergeable", context.mergeable),
        Field("Base", f"{context.base_branch} → Head: {context.head_branch}"),
    ]
    if context.base_override:
        blocks.append(Field("Base Override", f"{context.base_override} (PR default: {context.pr_base_branch})"))
    blocks.append(Field("Diff Command", context.diff_command))
    if context.body.strip():
        blocks.extend([Heading(2, "PR Description"), Paragraph(context.body)])
    return blocks


def _file_blocks(annotated_file: AnnotatedFile) -> list[Block]:
    diff_file = annotated_file.diff_file
    blocks: list[Block] = [
        FileHeader(
            path=diff_file.path,
            status=diff_file.status,
            old_path=diff_file.old_path,
            header_lines=diff_file.header_lines,
        )
    ]
    for annotated_hunk in annotated_file.hunks:
        blocks.append(HunkHeader(annotated_hunk.hunk.header))
        for annotated_line in annotated_hunk.lines:
            line = annotated_line.line
            blocks.append(
                CodeLine(
                    op=line.op,
                    marker=line.marker,
                    text=line.text,
                    old_line=line.old_line,
                    new_line=line.new_line,
                    eof_marker=line.eof_marker,
                )
            )
            for thread in annotated_line.threads:
                blocks.extend(_thread_entries(thread, with_path=False))
    if annotated_file.orphaned:
        blocks.append(Heading(3, f"{ORPHANED_TITLE}: {diff_file.path}"))
        for orphan in annotated_file.orphaned:
            blocks.extend(
                _thread_entries(orphan.thread, with_path=True, outside_diff=orphan.reason != REASON_OUTDATED)
            )
    return blocks


def build_document(
    annotated: AnnotatedDiff,
    context: PullRequestContext,
    general_comments: Sequence[GeneralComment] | None,
    reviews: Sequence[Review] | None,
) -> list[Block]:
    """Lay out the whole report as a flat sequence of format-neutral blocks."""
    blocks = _header_blocks(context)

    blocks.append(Heading(2, "File Changes"))
    stats = diffstat_lines(annotated.diff)
    blocks.append(Preformatted(tuple(stats)) if stats else Notice("No file changes statistics available"))

    blocks.append(Heading(2, "Annotated Diff"))
    if annotated.is_empty:
        blocks.append(Notice(NO_CHANGES))
    for annotated_file in annotated.files:
        blocks.extend(_file_blocks(annotated_file))

    if annotated.not_in_diff:
        blocks.append(Heading(2, "Comments on Files Not in Diff"))
        for thread in annotated.not_in_diff:
            blocks.extend(_thread_entries(thread, with_path=True))

    blocks.append(Heading(2, "General PR Comments"))
    if not general_comments:
        blocks.append(Notice("No general comments."))
    for comment in general_comments or ():
        blocks.append(CommentEntry(kind=KIND_GENERAL, author=comment.author, created_at=comment.created_at, body=comment.body))

    blocks.append(Heading(2, "Review Summaries"))
    if not reviews:
        blocks.append(Notice("No review summaries."))
    for review in reviews or ():
        blocks.append(
            CommentEntry(
                kind=KIND_REVIEW,
                author=review.author,
                created_at=review.submitted_at,
                body=review.body,
                state=review.state.upper(),
            )
        )
    return blocks


def comment_heading(entry: CommentEntry) -> str:
    if entry.kind == KIND_GENERAL:
        return f"Comment by @{entry.author} ({entry.created_at})"
    if entry.kind == KIND_REVIEW:
        return f"Review by @{entry.author} ({entry.created_at}) - {entry.state}"
    label = "REVIEW COMMENT" if entry.kind == KIND_INLINE else "REPLY"
    heading = f"{label} by @{entry.author} ({entry.created_at})"
    if entry.location:
        heading += f" on {entry.location}"
    if entry.note:
        heading += f" [{entry.note}]"
    return heading


class DocumentWriter:
    """Turns the shared block sequence into one output format.

    Hunk headers and code lines form code regions. Any other block closes the
    open region first; a file header then opens the region for its own file.
    """

    name = ""

    def write(self, blocks: Iterable[Block]) -> str:
        handlers: dict[type, Callable] = {
            Heading: self.heading,
            Field: self.field,
            Paragraph: self.paragraph,
            Notice: self.notice,
            Preformatted: self.preformatted,
            FileHeader: self.file_header,
            HunkHeader: self.hunk_header,
            CodeLine: self.code_line,
            CommentEntry: self.comment,
        }
        blocks = list(blocks)
        self.out: list[str] = []
        self.in_code = False
        self.begin(blocks)
        for block in blocks:
            if isinstance(block, CODE_BLOCKS):
                if not self.in_code:
                    self.open_code()
            elif self.in_code:
                self.close_code()
            handlers[type(block)](block)
        if self.in_code:
            self.close_code()
        self.end()
        return "\n".join(self.out) + "\n"

    def begin(self, blocks: list[Block]) -> None:
        pass

    def end(self) -> None:
        pass

    def open_code(self) -> None:
        self.in_code = True

    def close_code(self) -> None:
        self.in_code = False

    def heading(self, block: Heading) -> None:
        raise NotImplementedError

    def field(self, block: Field) -> None:
        raise NotImplementedError

    def paragraph(self, block: Paragraph) -> None:
        raise NotImplementedError

    def notice(self, block: Notice) -> None:
        raise NotImplementedError

    def preformatted(self, block: Preformatted) -> None:
        raise NotImplementedError

    def file_header(self, block: FileHeader) -> None:
        raise NotImplementedError

    def hunk_header(self, block: HunkHeader) -> None:
        raise NotImplementedError

    def code_line(self, block: CodeLine) -> None:
        raise NotImplementedError

    def comment(self, block: CommentEntry) -> None:
        raise NotImplementedError


class TextWriter(DocumentWriter):
    name = FORMAT_TEXT

    def heading(self, block: Heading) -> None:
        if self.out:
            self.out.append("")
        self.out.append(f"{'#' * block.level} {block.text}")

    def field(self, block: Field) -> None:
        self.out.append(f"{block.label}: {block.value}")

    def paragraph(self, block: Paragraph) -> None:
        self.out.extend(block.text.splitlines())

    def notice(self, block: Notice) -> None:
        self.out.append(block.text)

    def preformatted(self, block: Preformatted) -> None:
        self.out.extend(block.lines)

    def file_header(self, block: FileHeader) -> None:
        self.open_code()
        self.out.extend(block.header_lines)

    def hunk_header(self, block: HunkHeader) -> None:
        self.out.append(block.text)

    def code_line(self, block: CodeLine) -> None:
        self.out.append(block.marker + block.text)
        if block.eof_marker is not None:
            self.out.append("\\ " + block.eof_marker)

    def comment(self, block: CommentEntry) -> None:
        if block.kind in {KIND_GENERAL, KIND_REVIEW}:
            self.out.append("")
            self.out.append(f"### {comment_heading(block)}")
            self.out.extend(block.body.splitlines())
            return
        indent = "" if block.kind == KIND_INLINE else "  "
        self.out.append(f"# {indent}{comment_heading(block)}")
        for line in block.body.splitlines():
            self.out.append(f"# {indent}  {line}" if line else f"# {indent}".rstrip())


def _code_text(blocks: list[Block]) -> str:
    lines: list[str] = []
    for block in blocks:
        if isinstance(block, FileHeader):
            lines.extend(block.header_lines)
        elif isinstance(block, (HunkHeader, CodeLine)):
            lines.append(block.text)
    return "\n".join(lines)


class MarkdownWriter(DocumentWriter):
    name = FORMAT_MARKDOWN

    def begin(self, blocks: list[Block]) -> None:
        # The fence must outlast any backtick run inside the diff text.
        longest = max((len(run) for run in re.findall(r"`+", _code_text(blocks))), default=0)
        self.fence = "`" * max(3, longest + 1)

    def open_code(self) -> None:
        super().open_code()
        self.out.append(f"{self.fence}diff")

    def close_code(self) -> None:
        super().close_code()
        self.out.append(self.fence)
        self.out.append("")

    def heading(self, block: Heading) -> None:
        if self.out and self.out[-1] != "":
            self.out.append("")
        self.out.append(f"{'#' * min(block.level + 1, 6)} {block.text}")
        self.out.append("")

    def field(self, block: Field) -> None:
        self.out.append(f"- **{block.label}:** {block.value}")

    def paragraph(self, block: Paragraph) -> None:
        if self.out and self.out[-1] != "":
            self.out.append("")
        self.out.extend(block.text.splitlines())
        self.out.append("")

    def notice(self, block: Notice) -> None:
        if self.out and self.out[-1] != "":
            self.out.append("")
        self.out.append(f"_{block.text}_")
        self.out.append("")

    def preformatted(self, block: Preformatted) -> None:
        self.out.append("```")
        self.out.extend(block.lines)
        self.out.append("```")
        self.out.append("")

    def file_header(self, block: FileHeader) -> None:
        label = block.path
        if block.old_path and block.old_path != block.path:
            label = f"{block.old_path} → {block.path}"
        self.out.append(f"#### {label} ({block.status})")
        self.out.append("")
        self.open_code()
        self.out.extend(block.header_lines)

    def hunk_header(self, block: HunkHeader) -> None:
        self.out.append(block.text)

    def code_line(self, block: CodeLine) -> None:
        self.out.append(block.marker + block.text)
        if block.eof_marker is not None:
            self.out.append("\\ " + block.eof_marker)

    def comment(self, block: CommentEntry) -> None:
        if block.kind in {KIND_GENERAL, KIND_REVIEW}:
            self.out.append(f"#### {comment_heading(block)}")
            self.out.append("")
            if block.body.strip():
                self.out.extend(block.body.splitlines())
                self.out.append("")
            return
        prefix = "> " if block.kind == KIND_INLINE else "> > "
        self.out.append(f"{prefix}**{comment_heading(block)}**")
        if block.body.strip():
            self.out.append(prefix.rstrip())
            self.out.extend(f"{prefix}{line}" if line else prefix.rstrip() for line in block.body.splitlines())
        self.out.append("")


HTML_STYLE = (
    "body{font-family:monospace;margin:20px;}"
    "pre{margin:0;white-space:pre-wrap;}"
    ".comment{background:#f0f0f0;padding:10px;margin:10px 0;border-left:4px solid #007acc;}"
    ".comment.reply{margin-left:32px;border-left-color:#8cb4d6;}"
    ".comment-meta{font-weight:bold;margin-bottom:6px;}"
    ".file{margin-top:24px;}"
    ".meta{color:#6a737d;}"
    ".hunk{color:#6f42c1;}"
    ".add{background:#e6ffed;}"
    ".del{background:#ffeef0;}"
    ".ln{color:#959da5;user-select:none;}"
    ".notice{font-style:italic;}"
)


class HtmlWriter(DocumentWriter):
    name = FORMAT_HTML

    def begin(self, blocks: list[Block]) -> None:
        title = next((block.text for block in blocks if isinstance(block, Heading)), "Annotated Diff")
        self.out.append("<!DOCTYPE html>")
        self.out.append(f"<html><head><meta charset='utf-8'><title>{escape(title)}</title>")
        self.out.append(f"<style>{HTML_STYLE}</style>")
        self.out.append("</head><body>")

    def end(self) -> None:
        self.out.append("</body></html>")

    def open_code(self) -> None:
        super().open_code()
        self.out.append("<pre class='diff'>")

    def close_code(self) -> None:
        super().close_code()
        self.out.append("</pre>")

    def heading(self, block: Heading) -> None:
        level = min(block.level, 6)
        self.out.append(f"<h{level}>{escape(block.text)}</h{level}>")

    def field(self, block: Field) -> None:
        self.out.append(f"<div class='field'><b>{escape(block.label)}:</b> {escape(block.value)}</div>")

    def paragraph(self, block: Paragraph) -> None:
        self.out.append(f"<pre class='description'>{escape(block.text)}</pre>")

    def notice(self, block: Notice) -> None:
        self.out.append(f"<p class='notice'>{escape(block.text)}</p>")

    def preformatted(self, block: Preformatted) -> None:
        text = "\n".join(block.lines)
        self.out.append(f"<pre class='stats'>{escape(text)}</pre>")

    def file_header(self, block: FileHeader) -> None:
        label = block.path
        if block.old_path and block.old_path != block.path:
            label = f"{block.old_path} → {block.path}"
        self.out.append(
            "<h3 class='file' data-file='{path}'>{label} ({status})</h3>".format(
                path=escape(block.path),
                label=escape(label),
                status=escape(block.status),
            )
        )
        self.open_code()
        for line in block.header_lines:
            self.out.append(f"<span class='meta'>{escape(line)}</span>")

    def hunk_header(self, block: HunkHeader) -> None:
        self.out.append(f"<span class='hunk'>{escape(block.text)}</span>")

    def code_line(self, block: CodeLine) -> None:
        css = "add" if block.op == OP_ADDED else ("del" if block.op == OP_REMOVED else "ctx")
        old = "" if block.old_line is None else str(block.old_line)
        new = "" if block.new_line is None else str(block.new_line)
        self.out.append(
            "<span class='{css}'><span class='ln'>{gutter}</span>{text}</span>".format(
                css=css,
                gutter=escape(f"{old:>5} {new:>5} "),
                text=escape(block.marker + block.text),
            )
        )
        if block.eof_marker is not None:
            marker = "\\ " + block.eof_marker
            self.out.append(f"<span class='meta'>{escape(marker)}</span>")

    def comment(self, block: CommentEntry) -> None:
        css = "comment reply" if block.kind == KIND_REPLY else f"comment {block.kind}"
        self.out.append(f"<div class='{css}'>")
        self.out.append(f"<div class='comment-meta'>{escape(comment_heading(block))}</div>")
        if block.body:
            self.out.append(f"<pre class='comment-body'>{escape(block.body)}</pre>")
        self.out.append("</div>")


WRITERS: dict[str, type[DocumentWriter]] = {
    FORMAT_TEXT: TextWriter,
    FORMAT_MARKDOWN: MarkdownWriter,
    FORMAT_HTML: HtmlWriter,
}


def render(
    annotated: AnnotatedDiff,
    context: PullRequestContext,
    general_comments: Sequence[GeneralComment] | None,
    reviews: Sequence[Review] | None,
    fmt: str,
) -> str:
    writer = WRITERS[resolve_format(fmt)]()
    return writer.write(build_document(annotated, context, general_comments, reviews))
