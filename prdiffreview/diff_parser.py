from __future__ import annotations

import re
from dataclasses import dataclass, field, replace

from .errors import MalformedDiffError

HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<section>.*)$"
)

OP_CONTEXT = "context"
OP_ADDED = "added"
OP_REMOVED = "removed"

OP_MARKERS = {OP_CONTEXT: " ", OP_ADDED: "+", OP_REMOVED: "-"}

STATUS_ADDED = "added"
STATUS_DELETED = "deleted"
STATUS_RENAMED = "renamed"
STATUS_MODIFIED = "modified"
STATUS_BINARY = "binary"


@dataclass(frozen=True)
class DiffLine:
    op: str
    old_line: int | None
    new_line: int | None
    text: str
    eof_marker: str | None = None

    @property
    def marker(self) -> str:
        return OP_MARKERS[self.op]


@dataclass(frozen=True)
class DiffHunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str | None
    lines: tuple[DiffLine, ...]
    header: str


@dataclass(frozen=True)
class DiffFile:
    old_path: str | None
    new_path: str | None
    status: str
    hunks: tuple[DiffHunk, ...]
    header_lines: tuple[str, ...] = ()
    similarity: int | None = None

    @property
    def path(self) -> str:
        return self.new_path or self.old_path or ""

    @property
    def paths(self) -> set[str]:
        return {value for value in (self.old_path, self.new_path) if value}

    @property
    def additions(self) -> int:
        return sum(1 for hunk in self.hunks for line in hunk.lines if line.op == OP_ADDED)

    @property
    def deletions(self) -> int:
        return sum(1 for hunk in self.hunks for line in hunk.lines if line.op == OP_REMOVED)


@dataclass(frozen=True)
class DiffModel:
    files: tuple[DiffFile, ...]
    preamble: tuple[str, ...] = ()
    warnings: tuple[str, ...] = field(default=(), compare=False)

    @property
    def is_empty(self) -> bool:
        return not self.files

    @property
    def changed_paths(self) -> list[str]:
        return [diff_file.path for diff_file in self.files]

    def to_lines(self) -> list[str]:
        out = list(self.preamble)
        for diff_file in self.files:
            out.extend(diff_file.header_lines)
            for hunk in diff_file.hunks:
                out.append(hunk.header)
                for line in hunk.lines:
                    out.append(line.marker + line.text)
                    if line.eof_marker is not None:
                        out.append("\\ " + line.eof_marker)
        return out


def _unquote_path(value: str) -> str:
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        inner = value[1:-1]
        try:
            return inner.encode("latin-1").decode("unicode_escape").encode("latin-1").decode("utf-8")
        except UnicodeError:
            return inner
    return value


def normalize_diff_path(raw: str) -> str | None:
    value = _unquote_path(raw.split("\t", 1)[0].strip())
    if value == "/dev/null":
        return None
    if value.startswith("a/") or value.startswith("b/"):
        return value[2:]
    return value


def _paths_from_git_header(line: str) -> tuple[str | None, str | None]:
    rest = line[len("diff --git ") :].strip()
    quoted = re.match(r'^("(?:[^"\\]|\\.)*"|\S+) ("(?:[^"\\]|\\.)*"|\S+)$', rest)
    if quoted:
        return normalize_diff_path(quoted.group(1)), normalize_diff_path(quoted.group(2))
    # Unquoted paths with spaces: prefer the split where both sides name the same file.
    candidates = [match.start() for match in re.finditer(r" b/", rest)]
    for split in candidates:
        a_part, b_part = rest[:split], rest[split + 1 :]
        if a_part[2:] == b_part[2:]:
            return normalize_diff_path(a_part), normalize_diff_path(b_part)
    if candidates:
        split = candidates[0]
        return normalize_diff_path(rest[:split]), normalize_diff_path(rest[split + 1 :])
    return None, None


def _starts_file(lines: list[str], index: int) -> bool:
    line = lines[index]
    if line.startswith("diff --git "):
        return True
    return line.startswith("--- ") and index + 1 < len(lines) and lines[index + 1].startswith("+++ ")


def _next_file_start(lines: list[str], index: int) -> int:
    while index < len(lines) and not _starts_file(lines, index):
        index += 1
    return index


def _parse_hunk(lines: list[str], index: int, path: str | None) -> tuple[DiffHunk, int]:
    header = lines[index]
    match = HUNK_HEADER_RE.match(header)
    if not match:
        raise MalformedDiffError(f"Unsupported hunk header: {header}", path=path, line_number=index + 1)
    old_start = int(match.group("old_start"))
    old_count = int(match.group("old_count") or "1")
    new_start = int(match.group("new_start"))
    new_count = int(match.group("new_count") or "1")
    section = match.group("section").strip() or None

    body: list[DiffLine] = []
    old_cursor, new_cursor = old_start, new_start
    old_left, new_left = old_count, new_count
    index += 1
    while index < len(lines) and (old_left > 0 or new_left > 0):
        line = lines[index]
        marker = line[:1]
        if marker == "\\":
            if not body:
                raise MalformedDiffError("No-newline marker before any hunk line", path=path, line_number=index + 1)
            body[-1] = replace(body[-1], eof_marker=line[2:])
        elif marker == " " or line == "":
            if old_left == 0 or new_left == 0:
                raise MalformedDiffError(f"Hunk body exceeds header counts: {header}", path=path, line_number=index + 1)
            body.append(DiffLine(OP_CONTEXT, old_cursor, new_cursor, line[1:]))
            old_cursor += 1
            new_cursor += 1
            old_left -= 1
            new_left -= 1
        elif marker == "+":
            if new_left == 0:
                raise MalformedDiffError(f"Hunk body exceeds header counts: {header}", path=path, line_number=index + 1)
            body.append(DiffLine(OP_ADDED, None, new_cursor, line[1:]))
            new_cursor += 1
            new_left -= 1
        elif marker == "-":
            if old_left == 0:
                raise MalformedDiffError(f"Hunk body exceeds header counts: {header}", path=path, line_number=index + 1)
            body.append(DiffLine(OP_REMOVED, old_cursor, None, line[1:]))
            old_cursor += 1
            old_left -= 1
        else:
            raise MalformedDiffError(f"Unexpected line in hunk body: {line!r}", path=path, line_number=index + 1)
        index += 1

    if old_left > 0 or new_left > 0:
        raise MalformedDiffError(f"Hunk ended early: {header}", path=path, line_number=index)
    if index < len(lines) and lines[index].startswith("\\") and body:
        body[-1] = replace(body[-1], eof_marker=lines[index][2:])
        index += 1

    hunk = DiffHunk(
        old_start=old_start,
        old_count=old_count,
        new_start=new_start,
        new_count=new_count,
        section=section,
        lines=tuple(body),
        header=header,
    )
    return hunk, index


def _parse_file(lines: list[str], index: int) -> tuple[DiffFile, int]:
    header: list[str] = []
    git_style = lines[index].startswith("diff --git ")
    old_path: str | None = None
    new_path: str | None = None
    if git_style:
        old_path, new_path = _paths_from_git_header(lines[index])
        header.append(lines[index])
        index += 1

    new_file = deleted_file = renamed = binary = False
    similarity: int | None = None
    seen_plus = False
    while index < len(lines):
        line = lines[index]
        if line.startswith("diff --git "):
            break
        if line.startswith("@@") and not binary:
            break
        if not git_style and seen_plus:
            break
        if line.startswith("new file mode"):
            new_file = True
        elif line.startswith("deleted file mode"):
            deleted_file = True
        elif line.startswith("rename from "):
            renamed = True
            old_path = _unquote_path(line[len("rename from ") :].strip())
        elif line.startswith("rename to "):
            renamed = True
            new_path = _unquote_path(line[len("rename to ") :].strip())
        elif line.startswith("similarity index "):
            digits = line[len("similarity index ") :].strip().rstrip("%")
            similarity = int(digits) if digits.isdigit() else None
        elif line.startswith("Binary files ") or line.startswith("GIT binary patch"):
            binary = True
        elif line.startswith("--- ") and not seen_plus:
            old_path = normalize_diff_path(line[4:])
            if old_path is None:
                new_file = True
        elif line.startswith("+++ ") and not seen_plus:
            seen_plus = True
            new_path = normalize_diff_path(line[4:])
            if new_path is None:
                deleted_file = True
        header.append(line)
        index += 1

    if new_file:
        old_path = None
    if deleted_file:
        new_path = None

    hunks: list[DiffHunk] = []
    label = new_path or old_path
    while index < len(lines) and lines[index].startswith("@@") and not binary:
        hunk, index = _parse_hunk(lines, index, label)
        hunks.append(hunk)

    if binary:
        status = STATUS_BINARY
    elif new_file:
        status = STATUS_ADDED
    elif deleted_file:
        status = STATUS_DELETED
    elif renamed:
        status = STATUS_RENAMED
    else:
        status = STATUS_MODIFIED

    if not label:
        raise MalformedDiffError("File header without a path", line_number=index)
    diff_file = DiffFile(
        old_path=old_path,
        new_path=new_path,
        status=status,
        hunks=tuple(hunks),
        header_lines=tuple(header),
        similarity=similarity,
    )
    return diff_file, index


def split_diff_lines(diff_text: str) -> list[str]:
    # Only "\n" ends a diff line; \r, form feeds and the like belong to the content.
    lines = diff_text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def parse_diff(diff_text: str, *, strict: bool = False) -> DiffModel:
    """Parse unified diff text into a line-addressable model.

    A file section that cannot be parsed is skipped and reported in
    ``DiffModel.warnings``; with ``strict=True`` the error propagates instead.
    Text that contains no file header at all is not a diff and always raises.
    """
    lines = split_diff_lines(diff_text)
    index = _next_file_start(lines, 0)
    preamble = lines[:index]
    if index == len(lines):
        if any(line.strip() for line in lines):
            raise MalformedDiffError("No file headers found in diff text")
        return DiffModel(files=(), preamble=tuple(preamble))

    files: list[DiffFile] = []
    warnings: list[str] = []
    while index < len(lines):
        start = index
        try:
            diff_file, index = _parse_file(lines, index)
            files.append(diff_file)
        except MalformedDiffError as error:
            if strict:
                raise
            label = error.path or f"file section at line {start + 1}"
            warnings.append(f"Skipped {label}: {error}")
            index = _next_file_start(lines, start + 1)
            continue

        resume = _next_file_start(lines, index)
        stray = [line for line in lines[index:resume] if line.strip()]
        if stray:
            warnings.append(f"Ignored {len(stray)} unexpected line(s) after {diff_file.path}")
        index = resume

    return DiffModel(files=tuple(files), preamble=tuple(preamble), warnings=tuple(warnings))
