"""git-sync - keep several git remotes in sync from one working copy.

Usage:
    git-sync [options] <command> [command options]

Commands:
    init                Create a sample .git-remotes.txt
    config              Show configured remotes and groups
    status              Show remotes, sync state and git status
    setup               Create/update git remotes from the configuration
    commit MESSAGE      Stage and commit, optionally push to every remote
    push                Push the current branch to every remote
    pull                Pull from the primary remote, fetch the mirrors
    fetch               Fetch from every remote group
    sync-all URL        Copy all branches and tags of a remote to URL

Options:
    --config PATH       Path to the remotes file (default: .git-remotes.txt)
    --settings PATH     Path to the settings file (default: .gitsyncrc.json)
    --remote NAMES      Only operate on these remotes, comma-separated
    --verbose           Show detailed output
    --quiet             Suppress all output except errors
    --version           Show version number

Settings (.gitsyncrc.json / .gitsyncrc.yaml):

    {
        "on_non_ff": "rebase",
        "pull_before_push": true,
        "merge_mirrors": false,
        "source_remote": "origin",
        "disabled": ["backup"]
    }

Environment Variables:
    GIT_SYNC_REMOTES            Comma-separated remote URLs (replaces the file)
    GIT_SYNC_ON_NON_FF          Default non-fast-forward policy
    GIT_SYNC_PULL_BEFORE_PUSH   Set to 'true' to fast-forward before pushing
    GIT_SYNC_SOURCE_REMOTE      Default source remote for sync-all
    GIT_SYNC_DISABLED           Comma-separated remote names to skip
    GIT_SYNC_VERBOSE            Set to 'true' for verbose output
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from git_sync import __version__
from git_sync.config import (
    CONFIG_FILE_NAMES,
    RemotesConfig,
    SyncSettings,
    create_sample_config,
    load_env_settings,
    load_remotes,
    load_settings_file,
    merge_settings,
)
from git_sync.engine import (
    CommitOptions,
    NonFastForwardPolicy,
    PullOptions,
    PushOptions,
    ReconciliationEngine,
    RunReport,
    SyncStatusResult,
)
from git_sync.errors import ConfigurationError, DetachedHeadError, GitSyncError
from git_sync.gateway import GitGateway, SyncState
from git_sync.output import Colors, Logger
from git_sync.registry import disable, resolve, restrict
from git_sync.replicator import FullHistoryReplicator, ReplicationOptions, ReplicationResult


def _policy(value: str) -> NonFastForwardPolicy:
    try:
        return NonFastForwardPolicy.parse(value)
    except ValueError:
        choices = ", ".join(p.value for p in NonFastForwardPolicy)
        raise argparse.ArgumentTypeError(
            f"invalid policy '{value}' (choose from {choices})"
        ) from None


def load_settings(args: argparse.Namespace, logger: Logger) -> SyncSettings:
    """Merge settings with precedence: file < environment."""
    file_settings = load_settings_file(args.settings, Path.cwd())
    env_settings = load_env_settings()
    return SyncSettings.from_dict(merge_settings(file_settings, env_settings), logger)


def load_targets(
    args: argparse.Namespace, settings: SyncSettings, logger: Logger
) -> RemotesConfig:
    """Load remotes and apply ``disabled`` settings and ``--remote`` selection."""
    config = load_remotes(Path.cwd(), args.config, logger)
    remotes = disable(config.remotes, settings.disabled)

    if args.remote:
        selected = [r.strip() for r in args.remote.split(",") if r.strip()]
        known = {r.name for r in config.remotes}
        for name in selected:
            if name not in known:
                raise ConfigurationError(f"Remote '{name}' not found in {config.source}")
        remotes = restrict(remotes, selected)

    config.remotes = remotes
    return config


def push_options(args: argparse.Namespace, settings: SyncSettings) -> PushOptions:
    """Build push options from flags, falling back to settings."""
    return PushOptions(
        force=args.force,
        force_with_lease=args.force_with_lease,
        set_upstream=args.set_upstream or settings.set_upstream,
        pull_before_push=args.pull_before_push or settings.pull_before_push,
        on_non_ff=args.on_non_ff or settings.on_non_ff,
    )


def print_config(config: RemotesConfig, logger: Logger) -> None:
    """Print configured remotes and how they group."""
    logger.header("git-sync configuration")
    logger.status_line("Source", config.source)
    logger.status_line("Project", str(Path.cwd()))
    logger.status_line("Remotes", str(len(config.remotes)))
    if logger.quiet:
        return

    print()
    for index, remote in enumerate(config.remotes, start=1):
        if remote.enabled:
            state = f"{Colors.GREEN}enabled{Colors.RESET}"
        else:
            state = f"{Colors.YELLOW}disabled{Colors.RESET}"
        print(f"  {index}. {Colors.BOLD}{remote.name:<12}{Colors.RESET} {remote.url}")
        line = f", line {remote.source_line}" if remote.source_line else ""
        standalone = ", standalone" if remote.standalone else ""
        print(f"     {state}{Colors.DIM}{line}{standalone}{Colors.RESET}")

    if not any(r.enabled for r in config.remotes):
        return
    logger.header("Groups")
    for group in resolve(config.remotes):
        print(f"  {Colors.CYAN}{group.base_name}{Colors.RESET}: {group.primary.name}", end="")
        if group.extras:
            extras = ", ".join(e.name for e in group.extras)
            print(f" {Colors.DIM}(push-only: {extras}){Colors.RESET}")
        else:
            print()


def print_sync_status(statuses: list[SyncStatusResult], logger: Logger) -> None:
    """Print sync state per remote group."""
    logger.header("Sync Status")
    if logger.quiet:
        return

    for status in statuses:
        if status.state == SyncState.IN_SYNC:
            icon, color, text = "✓", Colors.GREEN, "in sync"
        elif status.state == SyncState.AHEAD:
            icon, color, text = "↑", Colors.YELLOW, f"ahead by {status.ahead_count} commit(s)"
        elif status.state == SyncState.BEHIND:
            icon, color, text = "↓", Colors.YELLOW, f"behind by {status.behind_count} commit(s)"
        elif status.state == SyncState.DIVERGED:
            icon, color = "⚠", Colors.RED
            text = f"diverged (+{status.ahead_count}/-{status.behind_count})"
        elif status.state == SyncState.NO_REMOTE:
            icon, color, text = "○", Colors.DIM, "no remote branch"
        else:
            icon, color, text = "?", Colors.DIM, "unknown"
        print(f"  {color}{icon}{Colors.RESET} {Colors.BOLD}{status.remote}/{status.branch}{Colors.RESET}: ", end="")
        print(f"{color}{text}{Colors.RESET}")


def print_run_report(report: RunReport, logger: Logger) -> None:
    """Print a run summary."""
    logger.header(f"{report.operation.capitalize()} Results")
    if logger.quiet:
        return

    for outcome in report.outcomes:
        if outcome.success:
            icon, color = "✓", Colors.GREEN
        elif not outcome.blocking:
            icon, color = "⚠", Colors.YELLOW
        else:
            icon, color = "✗", Colors.RED
        print(f"  {color}{icon}{Colors.RESET} {Colors.BOLD}{outcome.target.name}{Colors.RESET}", end="")
        if outcome.strategy_used:
            print(f" {Colors.DIM}[{outcome.strategy_used.value}]{Colors.RESET}", end="")
        elif outcome.message:
            print(f" {Colors.DIM}[{outcome.message}]{Colors.RESET}", end="")
        print()
        if outcome.error:
            print(f"    {color}{outcome.error}{Colors.RESET}")

    print(f"\n  {Colors.BOLD}Summary:{Colors.RESET} ", end="")
    print(f"{Colors.GREEN}{report.succeeded} succeeded{Colors.RESET}, ", end="")
    print(f"{Colors.RED}{report.failed} failed{Colors.RESET} ", end="")
    print(f"({report.attempted} attempted)")


def print_replication_result(result: ReplicationResult, logger: Logger) -> None:
    logger.header("Sync-all Results")
    logger.status_line("Branches", str(result.branch_count))
    logger.status_line("Tags", str(result.tag_count))
    logger.status_line(
        "Operations", f"{result.operations_succeeded}/{result.operations_attempted} succeeded"
    )
    for error in result.errors:
        logger.status_line("Error", error, Colors.RED)


def cmd_init(args: argparse.Namespace, settings: SyncSettings, git: GitGateway, logger: Logger) -> int:
    path = create_sample_config(Path.cwd(), overwrite=args.force)
    logger.success(f"Sample configuration created: {path}")
    logger.info("Edit the file and add your remote URLs")
    return 0


def cmd_config(args: argparse.Namespace, settings: SyncSettings, git: GitGateway, logger: Logger) -> int:
    print_config(load_targets(args, settings, logger), logger)
    return 0


def cmd_status(args: argparse.Namespace, settings: SyncSettings, git: GitGateway, logger: Logger) -> int:
    config = load_targets(args, settings, logger)
    print_config(config, logger)

    engine = ReconciliationEngine(config.remotes, git, logger)
    try:
        print_sync_status(engine.sync_statuses(fetch=args.fetch), logger)
    except DetachedHeadError as e:
        logger.warning(str(e))

    logger.header("Git Status")
    return 0 if git.status().success else 1


def cmd_setup(args: argparse.Namespace, settings: SyncSettings, git: GitGateway, logger: Logger) -> int:
    config = load_targets(args, settings, logger)
    report = ReconciliationEngine(config.remotes, git, logger).setup()
    print_run_report(report, logger)
    return 0 if report.ok else 1


def cmd_commit(args: argparse.Namespace, settings: SyncSettings, git: GitGateway, logger: Logger) -> int:
    # Remotes are only needed when pushing afterwards
    remotes = load_targets(args, settings, logger).remotes if args.push else []
    engine = ReconciliationEngine(remotes, git, logger)
    _, report = engine.commit_and_push(
        args.message,
        CommitOptions(all=args.all, push=args.push),
        push_options(args, settings),
    )
    if report is None:
        return 0
    print_run_report(report, logger)
    return 0 if report.ok else 1


def cmd_push(args: argparse.Namespace, settings: SyncSettings, git: GitGateway, logger: Logger) -> int:
    config = load_targets(args, settings, logger)
    report = ReconciliationEngine(config.remotes, git, logger).push(push_options(args, settings))
    print_run_report(report, logger)
    return 0 if report.ok else 1


def cmd_pull(args: argparse.Namespace, settings: SyncSettings, git: GitGateway, logger: Logger) -> int:
    config = load_targets(args, settings, logger)
    options = PullOptions(
        rebase=args.rebase or settings.rebase,
        merge_mirrors=args.merge_mirrors or settings.merge_mirrors,
    )
    report = ReconciliationEngine(config.remotes, git, logger).pull(options)
    print_run_report(report, logger)
    return 0 if report.ok else 1


def cmd_fetch(args: argparse.Namespace, settings: SyncSettings, git: GitGateway, logger: Logger) -> int:
    config = load_targets(args, settings, logger)
    report = ReconciliationEngine(config.remotes, git, logger).fetch()
    print_run_report(report, logger)
    return 0 if report.ok else 1


def cmd_sync_all(args: argparse.Namespace, settings: SyncSettings, git: GitGateway, logger: Logger) -> int:
    options = ReplicationOptions(
        force=args.force,
        force_with_lease=args.force_with_lease,
        mirror=args.mirror,
    )
    source = args.source or settings.source_remote
    result = FullHistoryReplicator(git, logger).replicate(source, args.url, options)
    print_replication_result(result, logger)
    return 0 if result.success else 1


COMMANDS = {
    "init": cmd_init,
    "config": cmd_config,
    "status": cmd_status,
    "setup": cmd_setup,
    "commit": cmd_commit,
    "push": cmd_push,
    "pull": cmd_pull,
    "fetch": cmd_fetch,
    "sync-all": cmd_sync_all,
}


def _add_push_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force push",
    )
    parser.add_argument(
        "--force-with-lease",
        action="store_true",
        help="Force push only if the remote has not moved",
    )
    parser.add_argument(
        "--set-upstream", "-u",
        action="store_true",
        help="Set upstream when pushing",
    )
    parser.add_argument(
        "--pull-before-push",
        action="store_true",
        help="Fetch each remote and fast-forward before pushing to it",
    )
    parser.add_argument(
        "--on-non-ff",
        type=_policy,
        metavar="POLICY",
        help="When a push is rejected: skip (default), rebase, force-with-lease, force",
    )


def create_argument_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="git-sync",
        description="Keep several git remotes in sync from one working copy.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  git-sync init                          Create a sample remotes file
  git-sync setup                         Create git remotes from the file
  git-sync commit "msg" -a -p            Commit everything and push to all remotes
  git-sync push --on-non-ff rebase       Rebase onto a remote that moved, then push
  git-sync push --remote github,gitee    Push to two remotes only
  git-sync pull --merge-mirrors          Also fast-forward from mirror groups
  git-sync sync-all git@new.host:me/repo.git -s origin

Remotes files:
  {", ".join(CONFIG_FILE_NAMES)}
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="Path to the remotes file",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        metavar="PATH",
        help="Path to the settings file (JSON or YAML)",
    )
    parser.add_argument(
        "--remote",
        type=str,
        metavar="NAMES",
        help="Only operate on these remotes, comma-separated",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed output",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress all output except errors",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")

    init = subparsers.add_parser("init", help="Create a sample remotes file")
    init.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing remotes file",
    )

    subparsers.add_parser("config", help="Show configured remotes")

    status = subparsers.add_parser("status", help="Show remotes, sync state and git status")
    status.add_argument(
        "--fetch",
        action="store_true",
        help="Fetch each remote group before comparing",
    )

    subparsers.add_parser("setup", help="Create or update git remotes from the configuration")

    commit = subparsers.add_parser("commit", help="Stage and commit, optionally push")
    commit.add_argument("message", help="Commit message")
    commit.add_argument(
        "--all", "-a",
        action="store_true",
        help="Stage all changes including deletions",
    )
    commit.add_argument(
        "--push", "-p",
        action="store_true",
        help="Push to every remote after committing",
    )
    _add_push_arguments(commit)

    push = subparsers.add_parser("push", help="Push the current branch to every remote")
    _add_push_arguments(push)

    pull = subparsers.add_parser("pull", help="Pull from the primary remote")
    pull.add_argument(
        "--rebase", "-r",
        action="store_true",
        help="Rebase instead of merge",
    )
    pull.add_argument(
        "--merge-mirrors",
        action="store_true",
        help="Fast-forward from mirror groups too (default: fetch only)",
    )

    subparsers.add_parser("fetch", help="Fetch from every remote group")

    sync_all = subparsers.add_parser(
        "sync-all", help="Copy all branches and tags of a remote to a URL"
    )
    sync_all.add_argument("url", help="Destination repository URL")
    sync_all.add_argument(
        "--source", "-s",
        metavar="REMOTE",
        help="Source remote name (default: origin)",
    )
    sync_all.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force push",
    )
    sync_all.add_argument(
        "--force-with-lease",
        action="store_true",
        help="Force push only if the destination has not moved",
    )
    sync_all.add_argument(
        "--mirror",
        action="store_true",
        help="Push with --mirror instead of separate branch and tag pushes",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    logger = Logger(verbose=args.verbose, quiet=args.quiet)
    try:
        settings = load_settings(args, logger)
        if settings.verbose and not args.quiet:
            logger.verbose = True
        git = GitGateway(Path.cwd(), logger)
        return COMMANDS[args.command](args, settings, git, logger)
    except GitSyncError as e:
        logger.error(f"Error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
