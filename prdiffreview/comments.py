from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Iterable, Mapping, NamedTuple

SIDE_OLD = "old"
SIDE_NEW = "new"

REVIEW_STATES = ("approved", "changes_requested", "commented", "dismissed", "pending")

UNKNOWN_AUTHOR = "unknown"

_EPOCH = dt.datetime.min.replace(tzinfo=dt.timezone.utc)

CommentId = int | str


class AnchorKey(NamedTuple):
    path: str
    side: str
    line: int


@dataclass(frozen=True)
class Comment:
    comment_id: CommentId
    author: str
    body: str
    created_at: str
    path: str
    side: str
    line: int | None
    reply_to: CommentId | None = None
    original_line: int | None = None
    start_line: int | None = None

    @property
    def is_outdated(self) -> bool:
        return self.line is None


@dataclass(frozen=True)
class Thread:
    root: Comment
    replies: tuple[Comment, ...] = ()

    @property
    def comments(self) -> tuple[Comment, ...]:
        return (self.root, *self.replies)

    @property
    def path(self) -> str:
        return self.root.path

    @property
    def anchor(self) -> AnchorKey | None:
        if self.root.line is None:
            return None
        return AnchorKey(self.root.path, self.root.side, self.root.line)


@dataclass(frozen=True)
class GeneralComment:
    comment_id: CommentId | None
    author: str
    body: str
    created_at: str


@dataclass(frozen=True)
class Review:
    review_id: CommentId | None
    author: str
    submitted_at: str
    state: str
    body: str


@dataclass(frozen=True)
class CommentIndex:
    threads: tuple[Thread, ...]
    by_anchor: Mapping[AnchorKey, tuple[Thread, ...]]
    unanchored: Mapping[str, tuple[Thread, ...]]
    general_comments: tuple[GeneralComment, ...] = ()
    reviews: tuple[Review, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def comment_count(self) -> int:
        return sum(len(thread.comments) for thread in self.threads)

    @property
    def paths(self) -> list[str]:
        return sorted({thread.path for thread in self.threads})

    def lookup(self, path: str, side: str, line: int | None) -> tuple[Thread, ...]:
        if line is None:
            return ()
        return self.by_anchor.get(AnchorKey(path, side, line), ())

    def threads_for_path(self, path: str) -> tuple[Thread, ...]:
        return tuple(thread for thread in self.threads if thread.path == path)


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _normalize_id(value: Any) -> CommentId | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    return int(text) if text.isdigit() else text


def id_sort_key(value: CommentId | None) -> tuple[int, int, str]:
    if isinstance(value, int):
        return (0, value, "")
    if value is None:
        return (2, 0, "")
    return (1, 0, value)


def timestamp_sort_key(value: str) -> tuple[int, dt.datetime, str]:
    try:
        parsed = dt.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return (1, _EPOCH, value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return (0, parsed, value)


def comment_sort_key(comment: Comment) -> tuple:
    return (timestamp_sort_key(comment.created_at), id_sort_key(comment.comment_id))


def thread_sort_key(thread: Thread) -> tuple:
    return comment_sort_key(thread.root)


def _author(record: Mapping[str, Any]) -> str:
    for key in ("user", "author"):
        value = record.get(key)
        if isinstance(value, Mapping):
            login = value.get("login")
            if login:
                return str(login)
        elif isinstance(value, str) and value.strip():
            return value.strip()
    return UNKNOWN_AUTHOR


def _text(record: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = record.get(key)
        if value is not None:
            return str(value)
    return ""


def _side(value: Any) -> str:
    token = str(value or "").strip().lower()
    if token in {"left", "old"}:
        return SIDE_OLD
    return SIDE_NEW


def normalize_inline_comment(record: Mapping[str, Any], fallback_id: CommentId) -> Comment:
    comment_id = _normalize_id(record.get("id"))
    line = _as_int(record.get("line"))
    # GitHub reports position: null once a comment no longer maps onto the current diff.
    if "position" in record and record.get("position") is None:
        line = None
    return Comment(
        comment_id=fallback_id if comment_id is None else comment_id,
        author=_author(record),
        body=_text(record, "body"),
        created_at=_text(record, "created_at", "createdAt"),
        path=_text(record, "path"),
        side=_side(record.get("side")),
        line=line,
        reply_to=_normalize_id(record.get("in_reply_to_id", record.get("reply_to"))),
        original_line=_as_int(record.get("original_line")),
        start_line=_as_int(record.get("start_line")),
    )


def normalize_general_comment(record: Mapping[str, Any]) -> GeneralComment:
    return GeneralComment(
        comment_id=_normalize_id(record.get("id")),
        author=_author(record),
        body=_text(record, "body"),
        created_at=_text(record, "created_at", "createdAt"),
    )


def normalize_review(record: Mapping[str, Any]) -> Review:
    state = _text(record, "state").strip().lower()
    if state not in REVIEW_STATES:
        state = "commented"
    return Review(
        review_id=_normalize_id(record.get("id")),
        author=_author(record),
        submitted_at=_text(record, "submitted_at", "submittedAt"),
        state=state,
        body=_text(record, "body"),
    )


def _mappings(records: Iterable[Any] | None, label: str, warnings: list[str]) -> list[Mapping[str, Any]]:
    out: list[Mapping[str, Any]] = []
    for position, record in enumerate(records or []):
        if not isinstance(record, Mapping):
            warnings.append(f"Skipped {label} #{position}: expected an object, got {type(record).__name__}")
            continue
        out.append(record)
    return out


def build_threads(comments: list[Comment]) -> tuple[list[Thread], list[str]]:
    """Group flat comments into threads by following reply chains to their root.

    A reply whose parent is not in ``comments`` starts its own thread. Comments
    caught in a reply cycle are rooted at the earliest comment of the cycle.
    """
    warnings: list[str] = []
    by_id = {comment.comment_id: comment for comment in comments}
    root_of: dict[CommentId, CommentId] = {}
    cycle_roots: set[CommentId] = set()

    for comment in comments:
        chain = [comment.comment_id]
        current = comment
        root: CommentId | None = None
        while current.reply_to is not None and current.reply_to in by_id:
            if current.comment_id in root_of:
                root = root_of[current.comment_id]
                break
            if current.reply_to in chain:
                cycle = chain[chain.index(current.reply_to) :]
                root = min(cycle, key=lambda cid: comment_sort_key(by_id[cid]))
                if root not in cycle_roots:
                    cycle_roots.add(root)
                    warnings.append(f"Reply cycle detected among comments {sorted(cycle, key=id_sort_key)}")
                break
            current = by_id[current.reply_to]
            chain.append(current.comment_id)
        if root is None:
            root = root_of.get(current.comment_id, current.comment_id)
        for cid in chain:
            root_of.setdefault(cid, root)

    members: dict[CommentId, list[Comment]] = {}
    for comment in comments:
        members.setdefault(root_of[comment.comment_id], []).append(comment)

    threads: list[Thread] = []
    for root_id, group in members.items():
        replies = sorted((item for item in group if item.comment_id != root_id), key=comment_sort_key)
        threads.append(Thread(root=by_id[root_id], replies=tuple(replies)))
    threads.sort(key=thread_sort_key)
    return threads, warnings


def index_comments(
    inline_comments: Iterable[Any] | None,
    general_comments: Iterable[Any] | None = None,
    reviews: Iterable[Any] | None = None,
) -> CommentIndex:
    warnings: list[str] = []

    comments: list[Comment] = []
    seen_ids: set[CommentId] = set()
    for position, record in enumerate(_mappings(inline_comments, "inline comment", warnings)):
        comment = normalize_inline_comment(record, fallback_id=f"comment-{position}")
        if comment.comment_id in seen_ids:
            warnings.append(f"Duplicate inline comment id {comment.comment_id}; kept as a separate comment")
            comment = replace(comment, comment_id=f"{comment.comment_id}#{position}")
        seen_ids.add(comment.comment_id)
        comments.append(comment)

    threads, thread_warnings = build_threads(comments)
    warnings.extend(thread_warnings)

    by_anchor: dict[AnchorKey, list[Thread]] = {}
    unanchored: dict[str, list[Thread]] = {}
    for thread in threads:
        anchor = thread.anchor
        if anchor is None:
            unanchored.setdefault(thread.path, []).append(thread)
        else:
            by_anchor.setdefault(anchor, []).append(thread)

    general = sorted(
        (normalize_general_comment(record) for record in _mappings(general_comments, "general comment", warnings)),
        key=lambda item: (timestamp_sort_key(item.created_at), id_sort_key(item.comment_id)),
    )
    review_items = sorted(
        (normalize_review(record) for record in _mappings(reviews, "review", warnings)),
        key=lambda item: (timestamp_sort_key(item.submitted_at), id_sort_key(item.review_id)),
    )

    return CommentIndex(
        threads=tuple(threads),
        by_anchor=MappingProxyType({key: tuple(value) for key, value in by_anchor.items()}),
        unanchored=MappingProxyType({key: tuple(value) for key, value in unanchored.items()}),
        general_comments=tuple(general),
        reviews=tuple(review_items),
        warnings=tuple(warnings),
    )
