"""Copy every branch and tag of a named remote to a new URL."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from git_sync.errors import RemoteNotFoundError, ValidationError, VcsOperationError
from git_sync.gateway import GitGateway, GitResult
from git_sync.output import Logger


@dataclass
class ReplicationOptions:
    """Options for full-history replication."""

    force: bool = False
    force_with_lease: bool = False
    mirror: bool = False


@dataclass
class ReplicationResult:
    """Result of a replication run.

    Counts reflect what was discovered on the source, not what was pushed.
    """

    success: bool
    branch_count: int = 0
    tag_count: int = 0
    branches: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    operations_attempted: int = 0
    operations_succeeded: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return 0 < self.operations_succeeded < self.operations_attempted


class FullHistoryReplicator:
    """Push all refs of one source remote to one destination URL."""

    def __init__(self, git: GitGateway, logger: Logger | None = None) -> None:
        self.git = git
        self.logger = logger or Logger()

    def replicate(
        self,
        source_remote: str,
        destination_url: str,
        options: ReplicationOptions | None = None,
    ) -> ReplicationResult:
        """Fetch everything from ``source_remote`` and push it to ``destination_url``.

        Raises:
            ValidationError: Source name or destination URL is empty or starts with "-".
            RemoteNotFoundError: ``source_remote`` has no URL in this working copy.
            VcsOperationError: Fetching from the source failed.
        """
        options = options or ReplicationOptions()
        source_remote = (source_remote or "").strip()
        destination_url = (destination_url or "").strip()
        if not destination_url:
            raise ValidationError("destination URL is empty")
        if not source_remote:
            raise ValidationError("source remote name is empty")
        if destination_url.startswith("-"):
            raise ValidationError(f"destination URL '{destination_url}' must not start with '-'")
        if source_remote.startswith("-"):
            raise ValidationError(f"source remote name '{source_remote}' must not start with '-'")

        self.logger.header("Syncing all branches and tags")
        self.logger.status_line("Source", source_remote)
        self.logger.status_line("Destination", destination_url)

        source_url = self.git.get_remote_url(source_remote)
        if not source_url:
            raise RemoteNotFoundError(source_remote)
        self.logger.debug(f"Source URL: {source_url}")

        self.logger.info(f"Fetching all branches and tags from {source_remote}...")
        fetched = self.git.fetch_all_from_remote(source_remote)
        if not fetched.success:
            raise VcsOperationError(
                f"Fetch from {source_remote} ({source_url}) failed", fetched
            )

        branches = self.git.list_remote_branches(source_remote)
        tags = self.git.list_tags()
        result = ReplicationResult(
            success=False,
            branch_count=len(branches),
            tag_count=len(tags),
            branches=branches,
            tags=tags,
        )
        self.logger.info(f"Found {len(branches)} branch(es), {len(tags)} tag(s)")

        if not branches and not tags:
            self.logger.warning("No branches or tags found, nothing to sync")
            result.errors.append("no branches or tags found")
            return result

        observed = None
        if options.force_with_lease:
            observed = self.git.get_remote_refs(destination_url)
            if observed is None:
                self.logger.warning(f"Could not read refs of {destination_url}")

        if options.mirror:
            self._attempt(
                result,
                "mirror push",
                lambda: self.git.push_mirror(
                    destination_url,
                    force=options.force,
                    force_with_lease=options.force_with_lease,
                    observed=observed,
                ),
            )
        else:
            if branches:
                self._attempt(
                    result,
                    f"push of {len(branches)} branch(es)",
                    lambda: self.git.push_all_branches_as_refspec(
                        destination_url,
                        source_remote,
                        branches,
                        force=options.force,
                        force_with_lease=options.force_with_lease,
                        observed=observed,
                    ),
                )
            if tags:
                self._attempt(
                    result,
                    f"push of {len(tags)} tag(s)",
                    lambda: self.git.push_all_tags(
                        destination_url,
                        force=options.force,
                        force_with_lease=options.force_with_lease,
                        tags=tags,
                        observed=observed,
                    ),
                )

        result.success = result.operations_succeeded == result.operations_attempted
        if result.success:
            self.logger.success(f"All branches and tags synced to {destination_url}")
        elif result.partial:
            self.logger.warning(
                f"Sync partially completed "
                f"({result.operations_succeeded}/{result.operations_attempted})"
            )
        else:
            self.logger.error("Sync failed")
        return result

    def _attempt(
        self, result: ReplicationResult, label: str, push: Callable[[], GitResult]
    ) -> None:
        result.operations_attempted += 1
        pushed = push()
        if pushed.success:
            result.operations_succeeded += 1
            self.logger.success(f"{label.capitalize()} succeeded")
            return
        result.errors.append(f"{label}: {pushed.error}")
        self.logger.error(f"{label.capitalize()} failed: {pushed.error}")
        self.logger.info(
            "If the destination already has these refs, retry with --force or --force-with-lease"
        )
