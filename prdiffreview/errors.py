from __future__ import annotations


class PRReviewError(RuntimeError):
    """Base class for every fatal error raised by prdiffreview."""


class MalformedDiffError(PRReviewError):
    def __init__(self, message: str, *, path: str | None = None, line_number: int | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.line_number = line_number


class UnsupportedFormatError(PRReviewError):
    def __init__(self, fmt: str, supported: tuple[str, ...]) -> None:
        super().__init__(f"Invalid output format: {fmt}. Use {', '.join(supported)}.")
        self.format = fmt
        self.supported = supported


class CommandError(PRReviewError):
    def __init__(self, command: list[str], message: str) -> None:
        super().__init__(f"{' '.join(command)} failed: {message}" if message else f"{' '.join(command)} failed")
        self.command = list(command)
        self.stderr = message


class DependencyError(PRReviewError):
    pass
