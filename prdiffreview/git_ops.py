from __future__ import annotations

import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

from .errors import CommandError
from .github import run_gh


def run_git(repo: Path, args: list[str]) -> str:
    # Bytes mode: text mode would translate "\r\n" and lone "\r" in diff content.
    process = subprocess.run(
        ["git", "-C", str(repo), *args],
        capture_output=True,
        check=False,
    )
    stdout = process.stdout.decode("utf-8", errors="replace")
    if process.returncode != 0:
        stderr = process.stderr.decode("utf-8", errors="replace")
        raise CommandError(["git", *args], stderr.strip() or stdout.strip())
    return stdout


def current_branch(repo: Path) -> str | None:
    """Branch name to return to later, or the commit SHA on a detached HEAD."""
    try:
        name = run_git(repo, ["rev-parse", "--abbrev-ref", "HEAD"]).strip()
        if name and name != "HEAD":
            return name
        return run_git(repo, ["rev-parse", "HEAD"]).strip() or None
    except CommandError:
        return None


def ref_exists(repo: Path, ref: str) -> bool:
    try:
        run_git(repo, ["rev-parse", "--verify", "--quiet", ref])
    except CommandError:
        return False
    return True


def fetch_origin(repo: Path, remote: str = "origin") -> None:
    run_git(repo, ["fetch", remote, "--quiet"])


def ensure_remote_ref(repo: Path, base_branch: str, remote: str = "origin") -> bool:
    """Make ``<remote>/<base_branch>`` available; True when a fetch was needed."""
    if ref_exists(repo, f"{remote}/{base_branch}"):
        return False
    run_git(repo, ["fetch", remote, base_branch, "--quiet"])
    return True


def checkout_pr_branch(repo: Path, number: int, head_branch: str) -> None:
    if head_branch and ref_exists(repo, f"refs/heads/{head_branch}"):
        run_git(repo, ["checkout", head_branch, "--quiet"])
        return
    run_gh(["pr", "checkout", str(number)])


@contextmanager
def checked_out(
    repo: Path,
    number: int,
    head_branch: str,
    *,
    warn: Callable[[str], None] | None = None,
) -> Iterator[str | None]:
    original = current_branch(repo)
    try:
        checkout_pr_branch(repo, number, head_branch)
        yield original
    finally:
        if original and current_branch(repo) != original:
            try:
                run_git(repo, ["checkout", original, "--quiet"])
            except CommandError as error:
                if warn is not None:
                    warn(f"Failed to restore original branch {original}: {error}")


def generate_diff(repo: Path, base_branch: str, *, context_lines: int = 3, remote: str = "origin") -> str:
    return run_git(
        repo,
        [
            "diff",
            f"--unified={context_lines}",
            "--function-context",
            "--src-prefix=a/",
            "--dst-prefix=b/",
            "--no-color",
            "--no-ext-diff",
            f"{remote}/{base_branch}...HEAD",
        ],
    )
