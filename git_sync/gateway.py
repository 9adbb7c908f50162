"""Thin wrapper around the git binary.

Every call runs ``git <operation> <args...>`` as an argument vector and
returns a :class:`GitResult`. A non-zero exit is an ordinary outcome, never
an exception; callers decide what a failure means.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping

from git_sync.errors import DetachedHeadError
from git_sync.output import Logger


class SyncState(Enum):
    """Sync state between local and remote."""

    IN_SYNC = "in_sync"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"
    NO_REMOTE = "no_remote"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class GitResult:
    """Outcome of a single git invocation."""

    success: bool
    command: str
    output: str = ""
    error: str = ""
    returncode: int = 0


def _push_flags(
    force: bool,
    leases: Mapping[str, str] | None = None,
    set_upstream: bool = False,
) -> list[str]:
    """Build push flags; ``leases`` maps full ref names to their expected tips.

    An empty expected tip means the ref must not exist yet. Leases replace a
    plain ``--force``.
    """
    if leases is not None:
        flags = [f"--force-with-lease={ref}:{tip}" for ref, tip in leases.items()]
    elif force:
        flags = ["--force"]
    else:
        flags = []
    if set_upstream:
        flags.append("--set-upstream")
    return flags


class GitGateway:
    """Run git operations against one working copy."""

    def __init__(
        self,
        project_path: Path | None = None,
        logger: Logger | None = None,
        timeout: int | None = None,
    ) -> None:
        self.project_path = Path(project_path) if project_path else Path.cwd()
        self.logger = logger or Logger()
        self.timeout = timeout

    def execute(
        self,
        operation: str,
        args: list[str] | None = None,
        silent: bool = False,
        timeout: int | None = None,
    ) -> GitResult:
        """Run ``git <operation> <args>`` and capture the result."""
        argv = ["git", operation, *(args or [])]
        command = " ".join(argv)
        if not silent:
            self.logger.command(command)

        timeout = timeout if timeout is not None else self.timeout
        try:
            proc = subprocess.run(
                argv,
                cwd=self.project_path,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return GitResult(
                False, command, error=f"Command timed out after {timeout}s", returncode=124
            )
        except FileNotFoundError:
            return GitResult(False, command, error="git command not found", returncode=127)

        output = (proc.stdout or "").strip()
        error = (proc.stderr or "").strip()
        if not silent:
            self.logger.plain(output)
        if proc.returncode == 0:
            return GitResult(True, command, output=output, error=error, returncode=0)
        return GitResult(
            False,
            command,
            output=output,
            error=error or "Unknown error",
            returncode=proc.returncode,
        )

    # Repository state

    def is_git_repo(self) -> bool:
        result = self.execute("rev-parse", ["--is-inside-work-tree"], silent=True)
        return result.success and result.output.strip().lower() == "true"

    def init(self) -> GitResult:
        """Initialize a repository unless one already exists."""
        if self.is_git_repo():
            return GitResult(True, "git init")
        self.logger.info("Initializing git repository...")
        return self.execute("init")

    def get_current_branch(self) -> str:
        """Return the checked-out branch name.

        Raises:
            DetachedHeadError: No branch is checked out.
        """
        result = self.execute("branch", ["--show-current"], silent=True)
        branch = result.output.strip() if result.success else ""
        if not branch:
            raise DetachedHeadError()
        return branch

    def get_current_commit(self) -> str | None:
        result = self.execute("rev-parse", ["HEAD"], silent=True)
        return result.output.strip() if result.success else None

    def status(self) -> GitResult:
        return self.execute("status")

    def has_staged_changes(self) -> bool:
        """Check whether the index differs from HEAD."""
        result = self.execute("diff", ["--cached", "--quiet"], silent=True)
        if result.success:
            return False
        if result.returncode == 1:
            return True
        # No HEAD yet: anything in the index is a change
        porcelain = self.execute("status", ["--porcelain"], silent=True)
        return porcelain.success and bool(porcelain.output.strip())

    # Remotes

    def get_remote_url(self, name: str) -> str | None:
        """Get the fetch URL of a remote."""
        result = self.execute("remote", ["get-url", name], silent=True)
        if result.success and result.output.strip():
            return result.output.strip()
        return None

    def get_push_urls(self, name: str) -> list[str]:
        """Get the explicit push URLs of a remote (empty when none are set)."""
        result = self.execute("config", ["--get-all", f"remote.{name}.pushurl"], silent=True)
        if not result.success:
            return []
        return [line.strip() for line in result.output.splitlines() if line.strip()]

    def setup_remote(self, name: str, url: str) -> GitResult:
        """Create a remote, or point an existing one at ``url``."""
        existing = self.get_remote_url(name)
        if existing == url:
            self.logger.debug(f"Remote {name} already configured")
            return GitResult(True, f"git remote set-url {name} {url}")
        if existing:
            self.logger.info(f"Updating remote {name}: {url}")
            return self.execute("remote", ["set-url", name, url])
        self.logger.info(f"Adding remote {name}: {url}")
        return self.execute("remote", ["add", name, url])

    def add_push_url(self, name: str, url: str) -> GitResult:
        return self.execute("remote", ["set-url", "--add", "--push", name, url])

    def clear_push_urls(self, name: str) -> GitResult:
        """Remove every explicit push URL of a remote."""
        return self.execute("config", ["--unset-all", f"remote.{name}.pushurl"])

    # Working tree

    def stage(self, all_changes: bool = False) -> GitResult:
        """Stage the working tree; ``all_changes`` also stages deletions anywhere."""
        return self.execute("add", ["--all"] if all_changes else ["."])

    def commit(self, message: str) -> GitResult:
        return self.execute("commit", ["-m", message])

    # Transfer

    def push_to_url(
        self,
        url: str,
        branch: str,
        force: bool = False,
        force_with_lease: bool = False,
        set_upstream: bool = False,
        expected: str | None = None,
    ) -> GitResult:
        """Push ``branch`` straight to a URL, independent of remote names.

        With ``force_with_lease`` the destination branch is only overwritten
        while its tip is still ``expected`` (empty: the branch must not exist).
        Without ``expected`` the tip is read from ``url`` right before pushing.
        """
        leases = None
        if force_with_lease:
            ref = f"refs/heads/{branch}"
            known = None if expected is None else {ref: expected}
            leases = self._leases(url, [ref], known)
            if leases is None:
                return self._lease_unavailable(url)
        args = _push_flags(force, leases, set_upstream) + [url, branch]
        return self.execute("push", args)

    def pull(self, remote: str, branch: str, rebase: bool = False) -> GitResult:
        args = ["--rebase"] if rebase else []
        return self.execute("pull", args + [remote, branch])

    def fetch(self, remote: str, branch: str | None = None) -> GitResult:
        args = [remote]
        if branch:
            args.append(branch)
        return self.execute("fetch", args)

    def fetch_from_url(self, url: str, branch: str | None = None) -> GitResult:
        """Fetch from a URL into FETCH_HEAD."""
        args = [url]
        if branch:
            args.append(branch)
        return self.execute("fetch", args)

    def fetch_all_from_remote(self, remote: str) -> GitResult:
        """Fetch every branch and tag of ``remote``."""
        return self.execute("fetch", [remote, "--tags"])

    def merge(self, ref: str, ff_only: bool = False) -> GitResult:
        args = ["--ff-only"] if ff_only else []
        return self.execute("merge", args + [ref])

    def merge_fetch_head(self, ff_only: bool = True) -> GitResult:
        return self.merge("FETCH_HEAD", ff_only=ff_only)

    def rebase_onto(self, ref: str) -> GitResult:
        return self.execute("rebase", [ref])

    def rebase_abort(self) -> GitResult:
        return self.execute("rebase", ["--abort"])

    # Refs

    def get_remote_refs(
        self, url: str, refs: list[str] | None = None
    ) -> dict[str, str] | None:
        """Read ref tips at ``url`` with ``ls-remote``.

        Returns a ref name to object id mapping (peeled ``^{}`` entries are
        left out), or None when the destination cannot be read.
        """
        result = self.execute("ls-remote", [url, *(refs or [])], silent=True)
        if not result.success:
            return None

        tips: dict[str, str] = {}
        for line in result.output.splitlines():
            tip, _, ref = line.partition("\t")
            ref = ref.strip()
            if ref and not ref.endswith("^{}"):
                tips[ref] = tip.strip()
        return tips

    def _leases(
        self,
        url: str,
        refs: list[str],
        observed: Mapping[str, str] | None = None,
    ) -> dict[str, str] | None:
        if observed is None:
            observed = self.get_remote_refs(url, refs)
            if observed is None:
                return None
        return {ref: observed.get(ref, "") for ref in refs}

    def _lease_unavailable(self, url: str) -> GitResult:
        return GitResult(
            False,
            f"git ls-remote {url}",
            error=f"could not read current refs of {url} for --force-with-lease",
            returncode=128,
        )

    def list_remote_branches(self, remote: str) -> list[str]:
        """List remote-tracking branches of ``remote`` without the namespace prefix."""
        namespace = f"refs/remotes/{remote}/"
        result = self.execute(
            "for-each-ref", ["--format=%(refname)", namespace], silent=True
        )
        if not result.success:
            return []

        branches: list[str] = []
        for line in result.output.splitlines():
            ref = line.strip()
            if not ref.startswith(namespace):
                continue
            name = ref[len(namespace):]
            if name and name != "HEAD":
                branches.append(name)
        return branches

    def list_tags(self) -> list[str]:
        result = self.execute("tag", ["-l"], silent=True)
        if not result.success:
            return []
        return [line.strip() for line in result.output.splitlines() if line.strip()]

    def push_all_branches_as_refspec(
        self,
        url: str,
        remote: str,
        branches: list[str],
        force: bool = False,
        force_with_lease: bool = False,
        observed: Mapping[str, str] | None = None,
    ) -> GitResult:
        """Push remote-tracking branches of ``remote`` to ``url`` as its branches.

        A plain ``--force`` is expressed with ``+`` refspecs. Force-with-lease
        gets one expectation per destination branch, taken from ``observed``
        (refs previously read from ``url``) or read now.
        """
        leases = None
        if force_with_lease:
            leases = self._leases(url, [f"refs/heads/{b}" for b in branches], observed)
            if leases is None:
                return self._lease_unavailable(url)
        prefix = "+" if force and not force_with_lease else ""
        args = _push_flags(False, leases) + [url]
        args.extend(
            f"{prefix}refs/remotes/{remote}/{branch}:refs/heads/{branch}" for branch in branches
        )
        return self.execute("push", args)

    def push_mirror(
        self,
        url: str,
        force: bool = False,
        force_with_lease: bool = False,
        observed: Mapping[str, str] | None = None,
    ) -> GitResult:
        """Mirror every local ref to ``url``; leases cover the refs ``url`` already has."""
        leases = None
        if force_with_lease:
            if observed is None:
                observed = self.get_remote_refs(url)
                if observed is None:
                    return self._lease_unavailable(url)
            leases = {ref: tip for ref, tip in observed.items() if ref.startswith("refs/")}
        return self.execute("push", _push_flags(force, leases) + ["--mirror", url])

    def push_all_tags(
        self,
        url: str,
        force: bool = False,
        force_with_lease: bool = False,
        tags: list[str] | None = None,
        observed: Mapping[str, str] | None = None,
    ) -> GitResult:
        leases = None
        if force_with_lease:
            names = self.list_tags() if tags is None else tags
            leases = self._leases(url, [f"refs/tags/{t}" for t in names], observed)
            if leases is None:
                return self._lease_unavailable(url)
        return self.execute("push", _push_flags(force, leases) + ["--tags", url])

    def get_sync_state(self, remote: str, branch: str) -> tuple[SyncState, int, int]:
        """
        Get the sync state between local and remote branch.

        Returns (state, ahead_count, behind_count).
        """
        result = self.execute(
            "rev-list",
            ["--left-right", "--count", f"{branch}...{remote}/{branch}"],
            silent=True,
        )
        if not result.success:
            # Remote branch might not exist
            return SyncState.NO_REMOTE, 0, 0

        parts = result.output.split()
        if len(parts) != 2:
            return SyncState.UNKNOWN, 0, 0

        try:
            ahead = int(parts[0])
            behind = int(parts[1])
        except ValueError:
            return SyncState.UNKNOWN, 0, 0

        if ahead == 0 and behind == 0:
            return SyncState.IN_SYNC, 0, 0
        elif ahead > 0 and behind == 0:
            return SyncState.AHEAD, ahead, 0
        elif ahead == 0 and behind > 0:
            return SyncState.BEHIND, 0, behind
        else:
            return SyncState.DIVERGED, ahead, behind
