"""Multi-remote reconciliation.

Push treats every enabled remote as an independent destination URL and walks
an explicit fallback chain for each one:

    direct -> set-upstream-retry -> non-fast-forward policy step

The first step that succeeds ends the chain. A failure on one remote never
stops the others; every remote ends up with exactly one outcome in the
report.

Pull and fetch work on remote groups instead (see ``registry``): only the
first group is pulled, later groups are fetched and, on request,
fast-forwarded.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from git_sync.errors import ValidationError, VcsOperationError
from git_sync.gateway import GitGateway, GitResult, SyncState
from git_sync.output import Logger
from git_sync.registry import RemoteGroup, RemoteTarget, enabled_targets, resolve


class NonFastForwardPolicy(Enum):
    """What to do when a push is still rejected after the upstream retry."""

    SKIP = "skip"
    REBASE = "rebase"
    FORCE_WITH_LEASE = "force-with-lease"
    FORCE = "force"

    @classmethod
    def parse(cls, value: str | NonFastForwardPolicy) -> NonFastForwardPolicy:
        """Parse ``force-with-lease``, ``forceWithLease`` or ``FORCE_WITH_LEASE``."""
        if isinstance(value, cls):
            return value
        key = re.sub(r"(?<=[a-z])(?=[A-Z])", "-", str(value).strip())
        return cls(key.replace("_", "-").lower())


class PushStrategy(Enum):
    """Push attempt that produced an outcome."""

    DIRECT = "direct"
    SET_UPSTREAM_RETRY = "set-upstream-retry"
    REBASE = "rebase"
    FORCE_WITH_LEASE = "force-with-lease"
    FORCE = "force"


class CommitStatus(Enum):
    """Result of the commit step."""

    COMMITTED = "committed"
    NO_CHANGES = "no-changes"


@dataclass
class PushOptions:
    """Options for push reconciliation."""

    force: bool = False
    force_with_lease: bool = False
    set_upstream: bool = False
    pull_before_push: bool = False
    on_non_ff: NonFastForwardPolicy = NonFastForwardPolicy.SKIP


@dataclass
class PullOptions:
    """Options for pull reconciliation."""

    rebase: bool = False
    merge_mirrors: bool = False


@dataclass
class CommitOptions:
    """Options for the commit step."""

    all: bool = False
    push: bool = False


@dataclass(frozen=True)
class PushStep:
    """One entry of a push fallback chain."""

    strategy: PushStrategy
    force: bool = False
    force_with_lease: bool = False
    set_upstream: bool = False
    rebase_first: bool = False


@dataclass
class OperationOutcome:
    """Result of one operation against one remote."""

    target: RemoteTarget
    success: bool
    error: str | None = None
    strategy_used: PushStrategy | None = None
    message: str = ""
    blocking: bool = True


@dataclass
class RunReport:
    """Outcomes of one reconciliation run."""

    operation: str
    outcomes: list[OperationOutcome] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def all_succeeded(self) -> bool:
        return all(o.success for o in self.outcomes)

    @property
    def ok(self) -> bool:
        """True when no failure counts against the run."""
        return all(o.success or not o.blocking for o in self.outcomes)


@dataclass
class CommitOutcome:
    """Result of the commit step."""

    status: CommitStatus
    message: str = ""

    @property
    def committed(self) -> bool:
        return self.status == CommitStatus.COMMITTED


@dataclass
class SyncStatusResult:
    """Status of sync between local and remote branches."""

    remote: str
    branch: str
    state: SyncState
    ahead_count: int = 0
    behind_count: int = 0


def build_push_chain(options: PushOptions) -> list[PushStep]:
    """Build the ordered list of push attempts for ``options``."""
    chain = [
        PushStep(
            PushStrategy.DIRECT,
            force=options.force,
            force_with_lease=options.force_with_lease,
            set_upstream=options.set_upstream,
        )
    ]
    if not options.set_upstream:
        chain.append(
            PushStep(
                PushStrategy.SET_UPSTREAM_RETRY,
                force=options.force,
                force_with_lease=options.force_with_lease,
                set_upstream=True,
            )
        )

    policy = options.on_non_ff
    if policy == NonFastForwardPolicy.REBASE:
        chain.append(
            PushStep(
                PushStrategy.REBASE,
                force=options.force,
                force_with_lease=options.force_with_lease,
                set_upstream=options.set_upstream,
                rebase_first=True,
            )
        )
    elif policy == NonFastForwardPolicy.FORCE_WITH_LEASE:
        chain.append(
            PushStep(
                PushStrategy.FORCE_WITH_LEASE,
                force_with_lease=True,
                set_upstream=options.set_upstream,
            )
        )
    elif policy == NonFastForwardPolicy.FORCE:
        chain.append(
            PushStep(PushStrategy.FORCE, force=True, set_upstream=options.set_upstream)
        )
    return chain


class ReconciliationEngine:
    """Apply push, pull, fetch, commit and setup across configured remotes."""

    def __init__(
        self,
        remotes: list[RemoteTarget],
        git: GitGateway,
        logger: Logger | None = None,
    ) -> None:
        self.remotes = list(remotes)
        self.git = git
        self.logger = logger or Logger()

    def _isolated(
        self, target: RemoteTarget, action: Callable[[], OperationOutcome]
    ) -> OperationOutcome:
        try:
            return action()
        except Exception as e:  # a broken remote must not stop the run
            return OperationOutcome(target, False, error=str(e) or type(e).__name__)

    def _report(self, outcome: OperationOutcome, verb: str) -> None:
        name = outcome.target.name
        if outcome.success:
            detail = f" ({outcome.strategy_used.value})" if outcome.strategy_used else ""
            self.logger.success(f"{name}: {verb} succeeded{detail}")
        elif outcome.blocking:
            self.logger.error(f"{name}: {verb} failed: {outcome.error}")
        else:
            self.logger.warning(f"{name}: {verb} failed: {outcome.error}")

    # Push

    def push(self, options: PushOptions | None = None) -> RunReport:
        """Push the current branch to every enabled remote.

        Raises:
            EmptyRegistryError: No remote is enabled.
            DetachedHeadError: No branch is checked out.
        """
        options = options or PushOptions()
        targets = enabled_targets(self.remotes)
        branch = self.git.get_current_branch()
        chain = build_push_chain(options)

        self.logger.header(f"Pushing {branch} to {len(targets)} remote(s)")
        report = RunReport("push")
        for target in targets:
            outcome = self._isolated(
                target, lambda: self._push_target(target, branch, options, chain)
            )
            report.outcomes.append(outcome)
            self._report(outcome, "push")
        return report

    def _push_target(
        self,
        target: RemoteTarget,
        branch: str,
        options: PushOptions,
        chain: list[PushStep],
    ) -> OperationOutcome:
        self.logger.info(f"Pushing to {target.name}...")

        if options.pull_before_push:
            fetched = self.git.fetch_from_url(target.url, branch)
            if fetched.success:
                merged = self.git.merge_fetch_head(ff_only=True)
                if not merged.success:
                    return OperationOutcome(
                        target,
                        False,
                        error=f"cannot fast-forward to {target.name}, push skipped: {merged.error}",
                        message="diverged",
                    )
            else:
                self.logger.warning(f"Fetch from {target.name} failed, pushing anyway")

        tip = None
        if any(step.force_with_lease for step in chain):
            tip = self._observe_tip(target, branch)

        last: GitResult | None = None
        for step in chain:
            if step.strategy != PushStrategy.DIRECT:
                self.logger.debug(f"Retrying {target.name} with {step.strategy.value}")
            result = self._run_step(step, target, branch, tip)
            if result.success:
                return OperationOutcome(target, True, strategy_used=step.strategy)
            last = result

        return OperationOutcome(target, False, error=last.error if last else None)

    def _observe_tip(self, target: RemoteTarget, branch: str) -> str | None:
        """Read the branch tip at the target; it is the force-with-lease expectation."""
        ref = f"refs/heads/{branch}"
        refs = self.git.get_remote_refs(target.url, [ref])
        if refs is None:
            self.logger.warning(f"Could not read {ref} from {target.name}")
            return None
        return refs.get(ref, "")

    def _run_step(
        self,
        step: PushStep,
        target: RemoteTarget,
        branch: str,
        tip: str | None = None,
    ) -> GitResult:
        if step.rebase_first:
            fetched = self.git.fetch_from_url(target.url, branch)
            if not fetched.success:
                return fetched
            rebased = self.git.rebase_onto("FETCH_HEAD")
            if not rebased.success:
                self.git.rebase_abort()
                return GitResult(
                    False,
                    rebased.command,
                    error=f"rebase onto {target.name} hit conflicts and was aborted: {rebased.error}",
                    returncode=rebased.returncode,
                )
        return self.git.push_to_url(
            target.url,
            branch,
            force=step.force,
            force_with_lease=step.force_with_lease,
            set_upstream=step.set_upstream,
            expected=tip,
        )

    # Pull / fetch

    def pull(self, options: PullOptions | None = None) -> RunReport:
        """Pull from the first group and fetch the others.

        Raises:
            EmptyRegistryError: No remote is enabled.
            DetachedHeadError: No branch is checked out.
        """
        options = options or PullOptions()
        groups = resolve(self.remotes)
        branch = self.git.get_current_branch()

        self.logger.header(f"Pulling {branch} from {len(groups)} remote group(s)")
        report = RunReport("pull")

        first, *mirrors = groups
        outcome = self._isolated(
            first.primary, lambda: self._pull_primary(first, branch, options)
        )
        report.outcomes.append(outcome)
        self._report(outcome, "pull")

        for group in mirrors:
            outcome = self._isolated(
                group.primary, lambda: self._fetch_mirror(group, branch, options)
            )
            outcome.blocking = False
            report.outcomes.append(outcome)
            self._report(outcome, "merge" if options.merge_mirrors else "fetch")
        return report

    def _pull_primary(
        self, group: RemoteGroup, branch: str, options: PullOptions
    ) -> OperationOutcome:
        remote = group.primary
        self.logger.info(f"Pulling from {remote.name}...")
        result = self.git.pull(remote.name, branch, rebase=options.rebase)
        if result.success:
            return OperationOutcome(remote, True, message="pulled")
        return OperationOutcome(remote, False, error=result.error)

    def _fetch_mirror(
        self, group: RemoteGroup, branch: str, options: PullOptions
    ) -> OperationOutcome:
        remote = group.primary
        self.logger.info(f"Fetching from {remote.name} (group {group.base_name})...")
        fetched = self.git.fetch(remote.name, branch)
        if not fetched.success:
            return OperationOutcome(remote, False, error=fetched.error, blocking=False)
        if not options.merge_mirrors:
            return OperationOutcome(remote, True, message="fetched")

        merged = self.git.merge(f"{remote.name}/{branch}", ff_only=True)
        if merged.success:
            return OperationOutcome(remote, True, message="merged")
        return OperationOutcome(remote, False, error=merged.error, blocking=False)

    def fetch(self) -> RunReport:
        """Fetch once from each group's primary remote."""
        groups = resolve(self.remotes)
        self.logger.header(f"Fetching from {len(groups)} remote group(s)")
        report = RunReport("fetch")
        for group in groups:
            remote = group.primary
            outcome = self._isolated(remote, lambda: self._fetch_group(remote))
            report.outcomes.append(outcome)
            self._report(outcome, "fetch")
        return report

    def _fetch_group(self, remote: RemoteTarget) -> OperationOutcome:
        result = self.git.fetch(remote.name)
        if result.success:
            return OperationOutcome(remote, True, message="fetched")
        return OperationOutcome(remote, False, error=result.error)

    # Commit

    def commit(self, message: str, options: CommitOptions | None = None) -> CommitOutcome:
        """Stage and commit; an unchanged index is skipped, not committed.

        Raises:
            ValidationError: The commit message is empty.
            VcsOperationError: Staging or committing failed.
        """
        options = options or CommitOptions()
        if not message.strip():
            raise ValidationError("commit message is empty")

        self.logger.info("Staging changes...")
        staged = self.git.stage(all_changes=options.all)
        if not staged.success:
            raise VcsOperationError("Failed to stage changes", staged)

        if not self.git.has_staged_changes():
            self.logger.warning("No changes to commit (working tree clean)")
            return CommitOutcome(CommitStatus.NO_CHANGES, "no changes")

        result = self.git.commit(message)
        if not result.success:
            raise VcsOperationError("Commit failed", result)
        self.logger.success("Committed")
        return CommitOutcome(CommitStatus.COMMITTED, self.git.get_current_commit() or "")

    def commit_and_push(
        self,
        message: str,
        commit_options: CommitOptions | None = None,
        push_options: PushOptions | None = None,
    ) -> tuple[CommitOutcome, RunReport | None]:
        """Run the commit step, then push when ``commit_options.push`` is set."""
        commit_options = commit_options or CommitOptions()
        outcome = self.commit(message, commit_options)
        if not commit_options.push:
            return outcome, None
        return outcome, self.push(push_options)

    # Setup / status

    def setup(self) -> RunReport:
        """Create or update git remotes for every group.

        Extras become push URLs of the primary remote. The primary URL is
        registered as a push URL too, otherwise git would stop pushing to it
        once any push URL exists. Push URLs that no longer belong to the group
        are removed.

        Raises:
            EmptyRegistryError: No remote is enabled.
            VcsOperationError: The repository could not be initialized.
        """
        groups = resolve(self.remotes)
        initialized = self.git.init()
        if not initialized.success:
            raise VcsOperationError("Failed to initialize repository", initialized)

        self.logger.header("Setting up remotes")
        report = RunReport("setup")
        for group in groups:
            for outcome in self._setup_group(group):
                report.outcomes.append(outcome)
                self._report(outcome, "setup")
        return report

    def _setup_group(self, group: RemoteGroup) -> list[OperationOutcome]:
        primary = group.primary
        created = self.git.setup_remote(primary.name, primary.url)
        if not created.success:
            return [OperationOutcome(primary, False, error=created.error)] + [
                OperationOutcome(
                    extra, False, error=f"primary remote {primary.name} is not configured"
                )
                for extra in group.extras
            ]
        wanted = [member.url for member in group.members] if group.extras else []
        registered = self.git.get_push_urls(primary.name)
        stale = [url for url in registered if url not in wanted]
        if stale:
            self.logger.info(f"Removing stale push URL(s) of {primary.name}: {', '.join(stale)}")
            cleared = self.git.clear_push_urls(primary.name)
            if not cleared.success:
                return [OperationOutcome(m, False, error=cleared.error) for m in group.members]
            registered = []

        if not group.extras:
            return [OperationOutcome(primary, True, message="remote configured")]

        present = set(registered)
        outcomes: list[OperationOutcome] = []
        for member in group.members:
            if member.url in present:
                outcomes.append(OperationOutcome(member, True, message="push URL present"))
                continue
            added = self.git.add_push_url(primary.name, member.url)
            if added.success:
                present.add(member.url)
                outcomes.append(
                    OperationOutcome(member, True, message=f"push URL added to {primary.name}")
                )
            else:
                outcomes.append(OperationOutcome(member, False, error=added.error))
        return outcomes

    def sync_statuses(self, fetch: bool = False) -> list[SyncStatusResult]:
        """Compare the current branch with each group's primary remote."""
        groups = resolve(self.remotes)
        branch = self.git.get_current_branch()
        results: list[SyncStatusResult] = []
        for group in groups:
            name = group.primary.name
            if fetch:
                self.git.fetch(name, branch)
            state, ahead, behind = self.git.get_sync_state(name, branch)
            results.append(SyncStatusResult(name, branch, state, ahead, behind))
        return results
