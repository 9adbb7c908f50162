"""Exception types raised by git-sync."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from git_sync.gateway import GitResult


class GitSyncError(Exception):
    """Base class for errors that end a git-sync invocation."""


class ConfigurationError(GitSyncError):
    """No usable remote configuration was found."""


class EmptyRegistryError(ConfigurationError):
    """Every configured remote was disabled or filtered out."""

    def __init__(self, message: str = "No enabled remotes to operate on") -> None:
        super().__init__(message)


class DetachedHeadError(GitSyncError):
    """The current branch cannot be determined."""

    def __init__(self) -> None:
        super().__init__(
            "Could not determine the current branch (detached HEAD?). "
            "Check out a branch and try again."
        )


class RemoteNotFoundError(GitSyncError):
    """A named remote has no URL configured in the working copy."""

    def __init__(self, remote: str) -> None:
        self.remote = remote
        super().__init__(
            f"Source remote '{remote}' does not exist. Run 'git-sync setup' "
            f"first or pass the correct remote name."
        )


class VcsOperationError(GitSyncError):
    """A required git step failed."""

    def __init__(self, message: str, result: GitResult | None = None) -> None:
        self.result = result
        if result is not None and result.error:
            message = f"{message}: {result.error}"
        super().__init__(message)


class ValidationError(GitSyncError):
    """A remote URL or configuration line is malformed."""

    def __init__(self, reason: str, line: int | None = None) -> None:
        self.reason = reason
        self.line = line
        prefix = f"line {line}: " if line is not None else ""
        super().__init__(f"{prefix}{reason}")
