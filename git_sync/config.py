"""Remote configuration loading.

Remotes come from environment variables or from a plain-text remotes file,
one remote per line:

    https://github.com/user/repo.git          # name generated from the URL
    origin https://github.com/user/repo.git
    [mirror] https://gitee.com/user/repo.git
    build-2! https://git.example.com/ci/build-2.git   # never grouped

Environment variables take precedence over the file; the two are never merged:

    GIT_SYNC_REMOTES            Comma-separated URLs
    GIT_SYNC_REMOTE_<i>         One URL per index, starting at 0
    GIT_SYNC_REMOTE_URL_<i>     URL, paired with an optional
    GIT_SYNC_REMOTE_NAME_<i>    explicit name

Behavior settings (non-fast-forward policy and friends) live in a separate
optional settings file, ``.gitsyncrc.json`` or ``.gitsyncrc.yaml``.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, TypedDict, cast

import yaml

from git_sync.engine import NonFastForwardPolicy
from git_sync.errors import ConfigurationError, ValidationError
from git_sync.output import Logger
from git_sync.registry import RemoteTarget

# Remotes file names, searched in order
CONFIG_FILE_NAMES = [".git-remotes.txt", "git-remotes.txt", ".git-remotes", "git-remotes"]

# Settings file names, searched in order
SETTINGS_FILE_NAMES = [".gitsyncrc.json", ".gitsyncrc.yaml", ".gitsyncrc.yml"]

ENV_SOURCE = "environment variables"

MIN_URL_LENGTH = 10

_HTTP_URL_RE = re.compile(r"^(https://|http://)\S+/.+/.+?(\.git)?$", re.IGNORECASE)
_SSH_URL_RE = re.compile(r"^\S+@\S+:[\w.-]+/.+?(\.git)?$", re.IGNORECASE)
_GIT_URL_RE = re.compile(r"^git://\S+/.+/.+?(\.git)?$", re.IGNORECASE)
_LAST_SEGMENT_RE = re.compile(r"([^/:]+?)(?:\.git)?/*$")
_NAME_FORBIDDEN_RE = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]|\.\.|@\{|//")
_UNSAFE_NAME_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")

SAMPLE_CONFIG = """\
# git-sync remotes
# One remote per line. Supported formats:

# URL only (name generated from the repository name)
https://github.com/username/repository.git

# name URL
origin https://github.com/username/repo1.git
backup https://gitee.com/username/repo1.git

# [name] URL
[company] https://git.company.com/team/project.git
[mirror] https://mirror.com/user/repo.git

# Names ending in -<number> are extra push addresses of the same repository:
# origin-2 https://gitlab.com/username/repo1.git
# Add ! after the name to keep such a remote separate:
# release-2024! https://git.company.com/team/release-2024.git

# Lines starting with # and blank lines are ignored.

# Supported protocols:
# HTTPS: https://github.com/user/repo.git
# SSH:   git@github.com:user/repo.git
# GIT:   git://git.company.com/team/repo.git
"""


@dataclass
class RemotesConfig:
    """Remotes loaded for one invocation."""

    remotes: list[RemoteTarget]
    source: str
    path: Path | None = None


def validate_git_url(url: str) -> tuple[bool, str | None]:
    """
    Check that ``url`` looks like a git remote address.

    Returns (valid, reason); reason is None for valid URLs.
    """
    trimmed = (url or "").strip()
    if not trimmed:
        return False, "URL is empty"
    if trimmed.startswith("-"):
        return False, "URL must not start with '-'"
    if len(trimmed) < MIN_URL_LENGTH:
        return False, "URL is too short"
    if _HTTP_URL_RE.match(trimmed) or _SSH_URL_RE.match(trimmed) or _GIT_URL_RE.match(trimmed):
        return True, None
    return False, "URL does not match any supported protocol (https, http, ssh, git)"


def validate_remote_name(name: str) -> tuple[bool, str | None]:
    """
    Check that ``name`` is usable as a git remote name.

    Returns (valid, reason); reason is None for valid names.
    """
    if not name:
        return False, "remote name is empty"
    if name.startswith("-"):
        return False, "remote name must not start with '-'"
    if name == "@" or _NAME_FORBIDDEN_RE.search(name):
        return False, "remote name contains characters git does not allow"
    for part in name.split("/"):
        if not part or part.startswith(".") or part.endswith((".lock", ".")):
            return False, "remote name is not a valid ref name"
    return True, None


def _dedupe(base: str, existing_names: list[str] | set[str]) -> str:
    candidate = base
    suffix = 1
    while candidate in existing_names:
        suffix += 1
        candidate = f"{base}-{suffix}"
    return candidate


def generate_remote_name(url: str, index: int = 0, existing_names: list[str] | None = None) -> str:
    """Derive a remote name from the last path segment of ``url``.

    Collisions get ``-2``, ``-3``... appended, which puts repeated
    repositories into the same group. URLs without a usable segment fall back
    to ``origin`` for the first entry and ``remote<N>`` after that.
    """
    existing = existing_names or []
    match = _LAST_SEGMENT_RE.search(url.strip())
    if match and match.group(1):
        candidate = _UNSAFE_NAME_CHARS_RE.sub("-", match.group(1)).strip("-.")
        if validate_remote_name(candidate)[0]:
            return _dedupe(candidate, existing)
    fallback = "origin" if index == 0 else f"remote{index + 1}"
    return _dedupe(fallback, existing)


def parse_remote_line(
    line: str,
    line_number: int,
    index: int = 0,
    existing_names: list[str] | None = None,
) -> RemoteTarget:
    """Parse one non-comment line of a remotes file.

    Raises:
        ValidationError: The line is malformed, the URL is invalid or the
            explicit name is already taken.
    """
    existing = existing_names or []
    parts = line.split()
    if not parts:
        raise ValidationError("empty line", line_number)

    standalone = False
    if len(parts) == 1:
        url = parts[0]
        name = generate_remote_name(url, index, existing)
    else:
        name = parts[0]
        url = " ".join(parts[1:])
        if name.startswith("[") and name.endswith("]"):
            name = name[1:-1].strip()
        if name.endswith("!"):
            standalone = True
            name = name[:-1]
        valid, reason = validate_remote_name(name)
        if not valid:
            raise ValidationError(f"invalid remote name '{name}' ({reason})", line_number)
        if name in existing:
            raise ValidationError(f"duplicate remote name '{name}'", line_number)

    valid, reason = validate_git_url(url)
    if not valid:
        raise ValidationError(f"invalid git URL '{url}' ({reason})", line_number)

    return RemoteTarget(
        name=name,
        url=url,
        enabled=True,
        source_line=line_number,
        standalone=standalone,
    )


def parse_config_content(content: str, logger: Logger | None = None) -> list[RemoteTarget]:
    """Parse a remotes file, skipping invalid lines with a warning."""
    logger = logger or Logger()
    remotes: list[RemoteTarget] = []

    for line_number, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        try:
            remote = parse_remote_line(
                line, line_number, len(remotes), [r.name for r in remotes]
            )
        except ValidationError as e:
            logger.warning(f"Line {e.line}: {e.reason}, skipped")
            continue
        remotes.append(remote)

    return remotes


def _env_remote(
    url: str,
    name: str | None,
    index: int,
    remotes: list[RemoteTarget],
    logger: Logger,
) -> RemoteTarget | None:
    valid, reason = validate_git_url(url)
    if not valid:
        logger.warning(f"Environment remote {index}: invalid git URL '{url}' ({reason}), skipped")
        return None
    if name:
        valid, reason = validate_remote_name(name)
        if not valid:
            logger.warning(
                f"Environment remote {index}: invalid remote name '{name}' ({reason}), skipped"
            )
            return None
    names = [r.name for r in remotes]
    if name and name in names:
        logger.warning(f"Environment remote {index}: duplicate remote name '{name}', skipped")
        return None
    return RemoteTarget(
        name=name or generate_remote_name(url, index, names),
        url=url,
        enabled=True,
        source_line=index + 1,
    )


def load_env_remotes(
    environ: Mapping[str, str] | None = None,
    logger: Logger | None = None,
) -> list[RemoteTarget]:
    """Load remotes from ``GIT_SYNC_REMOTE*`` environment variables."""
    env = os.environ if environ is None else environ
    logger = logger or Logger()
    remotes: list[RemoteTarget] = []

    joined = env.get("GIT_SYNC_REMOTES", "")
    for index, url in enumerate(u.strip() for u in joined.split(",")):
        if url:
            remote = _env_remote(url, None, index, remotes, logger)
            if remote:
                remotes.append(remote)

    index = 0
    while env.get(f"GIT_SYNC_REMOTE_{index}"):
        url = env[f"GIT_SYNC_REMOTE_{index}"].strip()
        if url:
            remote = _env_remote(url, None, index, remotes, logger)
            if remote:
                remotes.append(remote)
        index += 1

    index = 0
    while env.get(f"GIT_SYNC_REMOTE_URL_{index}"):
        url = env[f"GIT_SYNC_REMOTE_URL_{index}"].strip()
        name = env.get(f"GIT_SYNC_REMOTE_NAME_{index}", "").strip() or None
        if url:
            remote = _env_remote(url, name, index, remotes, logger)
            if remote:
                remotes.append(remote)
        index += 1

    return remotes


def find_config_file(project_path: Path | None = None) -> Path | None:
    """Find the first remotes file present in ``project_path``."""
    root = project_path or Path.cwd()
    for name in CONFIG_FILE_NAMES:
        path = root / name
        if path.is_file():
            return path
    return None


def load_remotes(
    project_path: Path | None = None,
    config_path: Path | None = None,
    logger: Logger | None = None,
    environ: Mapping[str, str] | None = None,
) -> RemotesConfig:
    """Load remotes from the environment, falling back to the remotes file.

    Raises:
        ConfigurationError: Nothing was found, the file is unreadable or it
            holds no valid remote.
    """
    logger = logger or Logger()

    env_remotes = load_env_remotes(environ, logger)
    if env_remotes:
        logger.debug(f"Using {len(env_remotes)} remote(s) from {ENV_SOURCE}")
        return RemotesConfig(remotes=env_remotes, source=ENV_SOURCE)

    if config_path is not None:
        path: Path | None = config_path
        if not config_path.is_file():
            raise ConfigurationError(f"Config file not found: {config_path}")
    else:
        path = find_config_file(project_path)
    if path is None:
        raise ConfigurationError(
            "No remotes configuration found. Create one of: " + ", ".join(CONFIG_FILE_NAMES)
        )

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Failed to read {path}: {e}") from e

    logger.debug(f"Loading remotes from {path}")
    remotes = parse_config_content(content, logger)
    if not remotes:
        raise ConfigurationError(f"No valid remotes in {path.name}")
    return RemotesConfig(remotes=remotes, source=path.name, path=path)


def create_sample_config(project_path: Path | None = None, overwrite: bool = False) -> Path:
    """Write a sample ``.git-remotes.txt``.

    Raises:
        ConfigurationError: The file exists and ``overwrite`` is false, or it
            cannot be written.
    """
    path = (project_path or Path.cwd()) / CONFIG_FILE_NAMES[0]
    if path.exists() and not overwrite:
        raise ConfigurationError(f"{path} already exists (use --force to overwrite)")
    try:
        path.write_text(SAMPLE_CONFIG, encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Failed to write {path}: {e}") from e
    return path


class SettingsDict(TypedDict, total=False):
    """Type definition for the settings file."""

    on_non_ff: str
    pull_before_push: bool
    set_upstream: bool
    rebase: bool
    merge_mirrors: bool
    source_remote: str
    disabled: list[str]
    verbose: bool


@dataclass
class SyncSettings:
    """Defaults for command options, overridable from the command line."""

    on_non_ff: NonFastForwardPolicy = NonFastForwardPolicy.SKIP
    pull_before_push: bool = False
    set_upstream: bool = False
    rebase: bool = False
    merge_mirrors: bool = False
    source_remote: str = "origin"
    disabled: list[str] = field(default_factory=list)
    verbose: bool = False

    @classmethod
    def from_dict(cls, data: SettingsDict, logger: Logger | None = None) -> SyncSettings:
        """Create from dictionary."""
        policy_str = data.get("on_non_ff", "skip")
        try:
            policy = NonFastForwardPolicy.parse(policy_str)
        except ValueError:
            (logger or Logger()).warning(
                f"Unknown non-fast-forward policy '{policy_str}', using 'skip'"
            )
            policy = NonFastForwardPolicy.SKIP

        # A YAML scalar like "disabled: backup" names one or more remotes
        disabled = data.get("disabled", [])
        if isinstance(disabled, str):
            disabled = [n.strip() for n in disabled.split(",") if n.strip()]
        elif not isinstance(disabled, list):
            raise ConfigurationError("Setting 'disabled' must be a list of remote names")

        return cls(
            on_non_ff=policy,
            pull_before_push=bool(data.get("pull_before_push", False)),
            set_upstream=bool(data.get("set_upstream", False)),
            rebase=bool(data.get("rebase", False)),
            merge_mirrors=bool(data.get("merge_mirrors", False)),
            source_remote=data.get("source_remote", "origin"),
            disabled=[str(name) for name in disabled],
            verbose=bool(data.get("verbose", False)),
        )


def load_settings_file(
    settings_path: Path | None = None,
    project_path: Path | None = None,
) -> SettingsDict:
    """Load the settings file (JSON or YAML).

    Raises:
        ConfigurationError: The file exists but cannot be parsed.
    """
    root = project_path or Path.cwd()
    paths = [settings_path] if settings_path else [root / name for name in SETTINGS_FILE_NAMES]

    for path in paths:
        if not path.is_file():
            continue
        try:
            with open(path, encoding="utf-8") as f:
                if path.suffix in (".yaml", ".yml"):
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Invalid settings file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid settings file {path}: expected a mapping")
        return cast(SettingsDict, data)

    return {}


def _env_flag(value: str) -> bool | None:
    value = value.strip().lower()
    if value in ("1", "true", "yes"):
        return True
    if value in ("0", "false", "no"):
        return False
    return None


def load_env_settings(environ: Mapping[str, str] | None = None) -> SettingsDict:
    """Load settings from environment variables."""
    env = os.environ if environ is None else environ
    settings: SettingsDict = {}

    if env.get("GIT_SYNC_ON_NON_FF"):
        settings["on_non_ff"] = env["GIT_SYNC_ON_NON_FF"].strip()

    pull_before_push = _env_flag(env.get("GIT_SYNC_PULL_BEFORE_PUSH", ""))
    if pull_before_push is not None:
        settings["pull_before_push"] = pull_before_push

    if env.get("GIT_SYNC_SOURCE_REMOTE"):
        settings["source_remote"] = env["GIT_SYNC_SOURCE_REMOTE"].strip()

    if env.get("GIT_SYNC_DISABLED"):
        settings["disabled"] = [n.strip() for n in env["GIT_SYNC_DISABLED"].split(",") if n.strip()]

    verbose = _env_flag(env.get("GIT_SYNC_VERBOSE", ""))
    if verbose is not None:
        settings["verbose"] = verbose

    return settings


def merge_settings(*configs: SettingsDict) -> SettingsDict:
    """Merge multiple settings dictionaries, later ones override earlier."""
    result: SettingsDict = {}
    for config in configs:
        result.update(config)
    return result
