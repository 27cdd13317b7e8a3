from __future__ import annotations

import json
import shutil
import subprocess
from typing import Any

from .errors import CommandError, DependencyError, PRReviewError

REQUIRED_COMMANDS = ("gh", "git")
REPO_FIELDS = "nameWithOwner,defaultBranchRef"
PR_FIELDS = "number,title,body,baseRefName,headRefName,author,createdAt,updatedAt,state,mergeable"


def run_gh(args: list[str]) -> str:
    command = ["gh", *args]
    process = subprocess.run(
        command,
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=False,
    )
    if process.returncode != 0:
        raise CommandError(command, process.stderr.strip() or process.stdout.strip())
    return process.stdout


def check_dependencies(commands: tuple[str, ...] = REQUIRED_COMMANDS) -> None:
    missing = [name for name in commands if shutil.which(name) is None]
    if missing:
        raise DependencyError(f"Missing dependencies: {', '.join(missing)}. Please install them first.")
    try:
        run_gh(["auth", "status"])
    except CommandError as error:
        raise DependencyError("GitHub CLI is not authenticated. Run: gh auth login") from error


def decode_json_pages(text: str) -> list[Any]:
    """Decode ``gh api --paginate`` output.

    Each page is emitted as its own JSON array with no separator, so the
    output is read as a stream of values and array pages are flattened.
    """
    decoder = json.JSONDecoder()
    items: list[Any] = []
    index = 0
    length = len(text)
    while True:
        while index < length and text[index].isspace():
            index += 1
        if index >= length:
            return items
        value, index = decoder.raw_decode(text, index)
        if isinstance(value, list):
            items.extend(value)
        else:
            items.append(value)


def _load_object(raw: str, what: str) -> dict[str, Any]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as error:
        raise PRReviewError(f"Unexpected {what} response from gh: {error}") from error
    if not isinstance(value, dict):
        raise PRReviewError(f"Unexpected {what} response from gh: expected an object.")
    return value


def fetch_repo_info() -> dict[str, Any]:
    try:
        raw = run_gh(["repo", "view", "--json", REPO_FIELDS])
    except CommandError as error:
        raise PRReviewError(
            "Failed to get repository information. Are you in a git repository with a GitHub remote?"
        ) from error
    return _load_object(raw, "repository")


def fetch_pr_info(number: int) -> dict[str, Any]:
    try:
        raw = run_gh(["pr", "view", str(number), "--json", PR_FIELDS])
    except CommandError as error:
        raise PRReviewError(f"PR #{number} not found or not accessible.") from error
    return _load_object(raw, "pull request")


def _fetch_list(endpoint: str, what: str) -> list[Any]:
    try:
        raw = run_gh(["api", "--paginate", endpoint])
    except CommandError as error:
        raise PRReviewError(f"Failed to fetch {what}: {error.stderr or error}") from error
    try:
        return decode_json_pages(raw)
    except json.JSONDecodeError as error:
        raise PRReviewError(f"Failed to decode {what}: {error}") from error


def fetch_inline_comments(repository: str, number: int) -> list[Any]:
    return _fetch_list(f"repos/{repository}/pulls/{number}/comments", "inline comments")


def fetch_general_comments(repository: str, number: int) -> list[Any]:
    return _fetch_list(f"repos/{repository}/issues/{number}/comments", "general comments")


def fetch_reviews(repository: str, number: int) -> list[Any]:
    return _fetch_list(f"repos/{repository}/pulls/{number}/reviews", "reviews")
