from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


def _field(payload: Mapping[str, Any], key: str, default: str) -> str:
    value = payload.get(key)
    if value is None or value == "":
        return default
    return str(value)


def _login(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if isinstance(value, Mapping):
        return str(value.get("login") or "unknown")
    if isinstance(value, str) and value:
        return value
    return "unknown"


def diff_command(base_branch: str, remote: str = "origin") -> str:
    return f"git diff {remote}/{base_branch}...HEAD"


@dataclass(frozen=True)
class PullRequestContext:
    """Everything the renderers need to know about the pull request and run.

    Built once from the repository and pull request payloads and passed
    explicitly to every component that prints PR details.
    """

    number: int
    repository: str
    title: str = "No title"
    body: str = ""
    author: str = "unknown"
    created_at: str = "unknown"
    updated_at: str = "unknown"
    state: str = "unknown"
    mergeable: str = "unknown"
    head_branch: str = "unknown"
    pr_base_branch: str = "main"
    base_override: str | None = None
    remote: str = "origin"

    @property
    def base_branch(self) -> str:
        return self.base_override or self.pr_base_branch

    @property
    def diff_command(self) -> str:
        return diff_command(self.base_branch, self.remote)

    @classmethod
    def from_payloads(
        cls,
        number: int,
        repo_info: Mapping[str, Any] | None,
        pr_info: Mapping[str, Any] | None,
        *,
        base_override: str | None = None,
        remote: str = "origin",
    ) -> "PullRequestContext":
        repo_info = repo_info or {}
        pr_info = pr_info or {}
        return cls(
            number=number,
            repository=_field(repo_info, "nameWithOwner", "unknown/unknown"),
            title=_field(pr_info, "title", "No title"),
            body=str(pr_info.get("body") or ""),
            author=_login(pr_info, "author"),
            created_at=_field(pr_info, "createdAt", "unknown"),
            updated_at=_field(pr_info, "updatedAt", "unknown"),
            state=_field(pr_info, "state", "unknown"),
            mergeable=_field(pr_info, "mergeable", "unknown"),
            head_branch=_field(pr_info, "headRefName", "unknown"),
            pr_base_branch=_field(pr_info, "baseRefName", "main"),
            base_override=base_override or None,
            remote=remote,
        )
