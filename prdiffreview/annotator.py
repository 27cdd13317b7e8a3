from __future__ import annotations

from dataclasses import dataclass

from .comments import SIDE_NEW, SIDE_OLD, CommentIndex, Thread, thread_sort_key
from .diff_parser import OP_ADDED, OP_REMOVED, DiffFile, DiffHunk, DiffLine, DiffModel

REASON_OUTDATED = "outdated"
REASON_OUTSIDE_DIFF = "outside_diff"


@dataclass(frozen=True)
class AnnotatedLine:
    line: DiffLine
    threads: tuple[Thread, ...] = ()


@dataclass(frozen=True)
class AnnotatedHunk:
    hunk: DiffHunk
    lines: tuple[AnnotatedLine, ...]


@dataclass(frozen=True)
class OrphanedThread:
    thread: Thread
    reason: str


@dataclass(frozen=True)
class AnnotatedFile:
    diff_file: DiffFile
    hunks: tuple[AnnotatedHunk, ...]
    orphaned: tuple[OrphanedThread, ...] = ()

    @property
    def attached_threads(self) -> list[Thread]:
        return [thread for hunk in self.hunks for line in hunk.lines for thread in line.threads]


@dataclass(frozen=True)
class AnnotatedDiff:
    diff: DiffModel
    files: tuple[AnnotatedFile, ...]
    not_in_diff: tuple[Thread, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return self.diff.is_empty

    def attached_comment_count(self) -> int:
        return sum(len(thread.comments) for item in self.files for thread in item.attached_threads)

    def orphaned_comment_count(self) -> int:
        return sum(len(orphan.thread.comments) for item in self.files for orphan in item.orphaned)

    def not_in_diff_comment_count(self) -> int:
        return sum(len(thread.comments) for thread in self.not_in_diff)

    def comment_count(self) -> int:
        return self.attached_comment_count() + self.orphaned_comment_count() + self.not_in_diff_comment_count()


def _line_keys(line: DiffLine) -> list[tuple[str, int]]:
    if line.op == OP_ADDED:
        return [(SIDE_NEW, line.new_line)]
    if line.op == OP_REMOVED:
        return [(SIDE_OLD, line.old_line)]
    return [(SIDE_NEW, line.new_line), (SIDE_OLD, line.old_line)]


def _threads_for_line(
    index: CommentIndex,
    paths: list[str],
    line: DiffLine,
    consumed: set[Thread],
) -> tuple[Thread, ...]:
    matches: list[Thread] = []
    for side, number in _line_keys(line):
        for path in paths:
            for thread in index.lookup(path, side, number):
                if thread in consumed:
                    continue
                consumed.add(thread)
                matches.append(thread)
    matches.sort(key=thread_sort_key)
    return tuple(matches)


def _annotate_file(diff_file: DiffFile, index: CommentIndex, consumed: set[Thread]) -> AnnotatedFile:
    paths = sorted(diff_file.paths)
    hunks: list[AnnotatedHunk] = []
    for hunk in diff_file.hunks:
        lines = tuple(
            AnnotatedLine(line=line, threads=_threads_for_line(index, paths, line, consumed)) for line in hunk.lines
        )
        hunks.append(AnnotatedHunk(hunk=hunk, lines=lines))

    orphaned: list[OrphanedThread] = []
    for path in paths:
        for thread in index.threads_for_path(path):
            if thread in consumed:
                continue
            consumed.add(thread)
            reason = REASON_OUTDATED if thread.anchor is None else REASON_OUTSIDE_DIFF
            orphaned.append(OrphanedThread(thread=thread, reason=reason))
    orphaned.sort(key=lambda item: thread_sort_key(item.thread))
    return AnnotatedFile(diff_file=diff_file, hunks=tuple(hunks), orphaned=tuple(orphaned))


def annotate(diff_model: DiffModel, comment_index: CommentIndex) -> AnnotatedDiff:
    """Attach comment threads to the diff lines they are anchored to.

    Lookups are by (path, side, line): added lines match new-side anchors,
    removed lines old-side anchors, and context lines either. Threads of a file
    that match no line land in that file's orphaned bucket; threads for paths
    the diff does not touch land in ``not_in_diff``. Inputs are not modified
    and the output order depends only on the inputs.
    """
    consumed: set[Thread] = set()
    files = tuple(_annotate_file(diff_file, comment_index, consumed) for diff_file in diff_model.files)
    not_in_diff = tuple(thread for thread in comment_index.threads if thread not in consumed)
    warnings = (*diff_model.warnings, *comment_index.warnings)
    return AnnotatedDiff(diff=diff_model, files=files, not_in_diff=not_in_diff, warnings=warnings)
