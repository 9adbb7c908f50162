"""Tests for the config module."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from git_sync.config import (
    CONFIG_FILE_NAMES,
    ENV_SOURCE,
    SAMPLE_CONFIG,
    SyncSettings,
    create_sample_config,
    find_config_file,
    generate_remote_name,
    load_env_remotes,
    load_env_settings,
    load_remotes,
    load_settings_file,
    merge_settings,
    parse_config_content,
    parse_remote_line,
    validate_git_url,
    validate_remote_name,
)
from git_sync.engine import NonFastForwardPolicy
from git_sync.errors import ConfigurationError, ValidationError
from git_sync.output import Logger


QUIET = Logger(quiet=True)


class TestValidateGitUrl:
    """Tests for validate_git_url."""

    def test_https_url(self) -> None:
        """Test a valid HTTPS URL."""
        assert validate_git_url("https://github.com/user/repo.git") == (True, None)

    def test_https_url_without_suffix(self) -> None:
        """Test that the .git suffix is optional."""
        valid, _ = validate_git_url("https://gitlab.com/group/project")
        assert valid is True

    def test_ssh_url(self) -> None:
        """Test a valid scp-style SSH URL."""
        assert validate_git_url("git@github.com:user/repo.git") == (True, None)

    def test_git_protocol_url(self) -> None:
        """Test a valid git:// URL."""
        assert validate_git_url("git://git.company.com/team/repo.git") == (True, None)

    def test_empty(self) -> None:
        """Test that an empty URL is rejected."""
        assert validate_git_url("   ") == (False, "URL is empty")

    def test_too_short(self) -> None:
        """Test that very short strings are rejected before pattern matching."""
        assert validate_git_url("not-a-url") == (False, "URL is too short")
        assert validate_git_url("http://x") == (False, "URL is too short")

    def test_unsupported_protocol(self) -> None:
        """Test that unknown protocols are rejected."""
        valid, reason = validate_git_url("ftp://example.com/user/repo.git")
        assert valid is False
        assert "supported protocol" in reason

    def test_option_like_url(self) -> None:
        """Test that a URL git would read as an option is rejected."""
        valid, reason = validate_git_url("--upload-pack=touch /tmp/x;git@host:a/b")
        assert valid is False
        assert reason == "URL must not start with '-'"


class TestValidateRemoteName:
    """Tests for validate_remote_name."""

    def test_valid_names(self) -> None:
        """Test names git accepts."""
        for name in ("origin", "gitee-2", "team/mirror", "release_2024", "v1.0"):
            assert validate_remote_name(name) == (True, None), name

    def test_option_like_name(self) -> None:
        """Test that a leading dash is rejected."""
        assert validate_remote_name("--receive-pack=evil") == (
            False,
            "remote name must not start with '-'",
        )

    def test_forbidden_characters(self) -> None:
        """Test characters and sequences git refuses in ref names."""
        for name in ("a b", "a..b", "a~1", "a^", "a:b", "a?", "a*", "a[b", "a\\b", "a@{1}", "@"):
            valid, _ = validate_remote_name(name)
            assert valid is False, name

    def test_bad_components(self) -> None:
        """Test empty, dotted and .lock path components."""
        for name in (".hidden", "a//b", "a/", "mirror.lock", "trailing."):
            valid, _ = validate_remote_name(name)
            assert valid is False, name


class TestGenerateRemoteName:
    """Tests for generate_remote_name."""

    def test_name_from_repository(self) -> None:
        """Test that the last path segment without .git is used."""
        assert generate_remote_name("https://github.com/user/widgets.git") == "widgets"
        assert generate_remote_name("git@github.com:user/widgets.git") == "widgets"

    def test_collision_gets_suffix(self) -> None:
        """Test that repeated repositories get -2, -3."""
        assert generate_remote_name(
            "https://gitee.com/user/widgets.git", 1, ["widgets"]
        ) == "widgets-2"
        assert generate_remote_name(
            "https://gitlab.com/user/widgets.git", 2, ["widgets", "widgets-2"]
        ) == "widgets-3"

    def test_fallback_names(self) -> None:
        """Test fallback names when no segment can be extracted."""
        assert generate_remote_name("/", 0) == "origin"
        assert generate_remote_name("/", 1) == "remote2"

    def test_unsafe_segment_is_sanitized(self) -> None:
        """Test that characters git refuses are replaced in generated names."""
        assert generate_remote_name("https://example.com/user/my repo.git") == "my-repo"
        assert generate_remote_name("https://example.com/user/-x.git") == "x"


class TestParseRemoteLine:
    """Tests for parse_remote_line."""

    def test_url_only(self) -> None:
        """Test a line with only a URL."""
        remote = parse_remote_line("https://github.com/user/repo.git", 3)
        assert remote.name == "repo"
        assert remote.source_line == 3
        assert remote.enabled is True

    def test_name_and_url(self) -> None:
        """Test a 'name URL' line."""
        remote = parse_remote_line("origin https://github.com/user/repo.git", 1)
        assert remote.name == "origin"
        assert remote.url == "https://github.com/user/repo.git"

    def test_bracketed_name(self) -> None:
        """Test a '[name] URL' line."""
        remote = parse_remote_line("[mirror] https://gitee.com/user/repo.git", 1)
        assert remote.name == "mirror"

    def test_standalone_marker(self) -> None:
        """Test that a trailing ! marks the remote standalone."""
        remote = parse_remote_line("release-2024! https://git.example.com/team/release.git", 1)
        assert remote.name == "release-2024"
        assert remote.standalone is True

    def test_invalid_url(self) -> None:
        """Test that invalid URLs raise with the line number."""
        with pytest.raises(ValidationError) as exc_info:
            parse_remote_line("origin not-a-url", 7)
        assert exc_info.value.line == 7
        assert "not-a-url" in exc_info.value.reason

    def test_duplicate_explicit_name(self) -> None:
        """Test that an explicit name cannot be reused."""
        with pytest.raises(ValidationError):
            parse_remote_line("origin https://github.com/user/repo.git", 2, 1, ["origin"])

    def test_option_like_name(self) -> None:
        """Test that a name git would read as an option is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            parse_remote_line("--receive-pack=evil https://github.com/u/r.git", 4)
        assert exc_info.value.line == 4
        assert "must not start with '-'" in exc_info.value.reason

    def test_option_like_url(self) -> None:
        """Test that a URL git would read as an option is rejected."""
        with pytest.raises(ValidationError):
            parse_remote_line("origin --upload-pack=x@host:a/b", 5)


class TestParseConfigContent:
    """Tests for parse_config_content."""

    def test_parses_file(self) -> None:
        """Test comments, blank lines and all line formats."""
        content = """
# primary
origin https://github.com/user/repo.git

[gitee] https://gitee.com/user/repo.git
gitee-2 https://gitee.com/mirror/repo.git
git@gitlab.com:user/repo.git
"""
        remotes = parse_config_content(content, QUIET)

        assert [r.name for r in remotes] == ["origin", "gitee", "gitee-2", "repo"]
        assert remotes[1].source_line == 5

    def test_skips_invalid_lines(self, capsys) -> None:
        """Test that invalid lines are skipped with a warning."""
        content = "origin https://github.com/user/repo.git\nbroken not-a-url\n"

        remotes = parse_config_content(content, Logger())

        assert [r.name for r in remotes] == ["origin"]
        assert "Line 2" in capsys.readouterr().out

    def test_sample_config_parses(self) -> None:
        """Test that the generated sample is a valid remotes file."""
        remotes = parse_config_content(SAMPLE_CONFIG, QUIET)
        assert [r.name for r in remotes] == [
            "repository", "origin", "backup", "company", "mirror"
        ]


class TestLoadRemotes:
    """Tests for loading remotes from files and the environment."""

    def test_load_from_file(self, tmp_path: Path) -> None:
        """Test loading the default remotes file."""
        (tmp_path / ".git-remotes.txt").write_text("origin https://github.com/user/repo.git\n")

        config = load_remotes(tmp_path, logger=QUIET, environ={})

        assert config.source == ".git-remotes.txt"
        assert config.path == tmp_path / ".git-remotes.txt"
        assert [r.name for r in config.remotes] == ["origin"]

    def test_file_search_order(self, tmp_path: Path) -> None:
        """Test that the first existing file name wins."""
        (tmp_path / "git-remotes").write_text("a https://github.com/user/a.git\n")
        (tmp_path / "git-remotes.txt").write_text("b https://github.com/user/b.git\n")

        assert find_config_file(tmp_path) == tmp_path / "git-remotes.txt"

    def test_explicit_config_path(self, tmp_path: Path) -> None:
        """Test loading a file given with --config."""
        path = tmp_path / "remotes.conf"
        path.write_text("origin https://github.com/user/repo.git\n")

        config = load_remotes(tmp_path, path, QUIET, environ={})

        assert config.source == "remotes.conf"

    def test_missing_explicit_config_path(self, tmp_path: Path) -> None:
        """Test that a missing --config file is an error."""
        with pytest.raises(ConfigurationError):
            load_remotes(tmp_path, tmp_path / "nope.txt", QUIET, environ={})

    def test_nothing_found(self, tmp_path: Path) -> None:
        """Test the error listing the searched file names."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_remotes(tmp_path, logger=QUIET, environ={})
        for name in CONFIG_FILE_NAMES:
            assert name in str(exc_info.value)

    def test_no_valid_remotes(self, tmp_path: Path) -> None:
        """Test that a file with only invalid lines is an error."""
        (tmp_path / ".git-remotes.txt").write_text("# nothing\nbroken not-a-url\n")

        with pytest.raises(ConfigurationError):
            load_remotes(tmp_path, logger=QUIET, environ={})

    def test_environment_takes_precedence(self, tmp_path: Path) -> None:
        """Test that environment remotes replace the file entirely."""
        (tmp_path / ".git-remotes.txt").write_text("origin https://github.com/user/repo.git\n")
        environ = {
            "GIT_SYNC_REMOTES": "https://github.com/user/app.git, https://gitee.com/user/app.git"
        }

        config = load_remotes(tmp_path, logger=QUIET, environ=environ)

        assert config.source == ENV_SOURCE
        assert config.path is None
        assert [r.name for r in config.remotes] == ["app", "app-2"]

    def test_indexed_environment_remotes(self) -> None:
        """Test GIT_SYNC_REMOTE_URL_i with optional names."""
        environ = {
            "GIT_SYNC_REMOTE_URL_0": "https://github.com/user/repo.git",
            "GIT_SYNC_REMOTE_NAME_0": "github",
            "GIT_SYNC_REMOTE_URL_1": "git@gitee.com:user/repo.git",
        }

        remotes = load_env_remotes(environ, QUIET)

        assert [(r.name, r.url) for r in remotes] == [
            ("github", "https://github.com/user/repo.git"),
            ("repo", "git@gitee.com:user/repo.git"),
        ]

    def test_invalid_environment_url_skipped(self) -> None:
        """Test that invalid environment URLs are skipped."""
        environ = {"GIT_SYNC_REMOTE_0": "bogus", "GIT_SYNC_REMOTE_1": "https://github.com/u/r.git"}

        remotes = load_env_remotes(environ, QUIET)

        assert [r.name for r in remotes] == ["r"]

    def test_invalid_environment_name_skipped(self) -> None:
        """Test that an environment remote with an unusable name is skipped."""
        environ = {
            "GIT_SYNC_REMOTE_URL_0": "https://github.com/user/repo.git",
            "GIT_SYNC_REMOTE_NAME_0": "--mirror",
            "GIT_SYNC_REMOTE_URL_1": "https://gitee.com/user/repo.git",
            "GIT_SYNC_REMOTE_NAME_1": "gitee",
        }

        remotes = load_env_remotes(environ, QUIET)

        assert [r.name for r in remotes] == ["gitee"]


class TestSampleConfig:
    """Tests for create_sample_config."""

    def test_creates_file(self, tmp_path: Path) -> None:
        """Test writing the sample file."""
        path = create_sample_config(tmp_path)

        assert path == tmp_path / ".git-remotes.txt"
        assert path.read_text() == SAMPLE_CONFIG

    def test_refuses_to_overwrite(self, tmp_path: Path) -> None:
        """Test that an existing file is kept unless overwrite is set."""
        (tmp_path / ".git-remotes.txt").write_text("keep me\n")

        with pytest.raises(ConfigurationError):
            create_sample_config(tmp_path)
        assert (tmp_path / ".git-remotes.txt").read_text() == "keep me\n"

        create_sample_config(tmp_path, overwrite=True)
        assert (tmp_path / ".git-remotes.txt").read_text() == SAMPLE_CONFIG


class TestSettings:
    """Tests for settings loading and merging."""

    def test_defaults(self) -> None:
        """Test SyncSettings defaults."""
        settings = SyncSettings.from_dict({})
        assert settings.on_non_ff == NonFastForwardPolicy.SKIP
        assert settings.source_remote == "origin"
        assert settings.disabled == []

    def test_policy_spellings(self) -> None:
        """Test that camelCase and snake_case policies are accepted."""
        assert SyncSettings.from_dict({"on_non_ff": "forceWithLease"}).on_non_ff == (
            NonFastForwardPolicy.FORCE_WITH_LEASE
        )
        assert SyncSettings.from_dict({"on_non_ff": "force_with_lease"}).on_non_ff == (
            NonFastForwardPolicy.FORCE_WITH_LEASE
        )

    def test_invalid_policy_falls_back(self) -> None:
        """Test that an unknown policy falls back to skip."""
        settings = SyncSettings.from_dict({"on_non_ff": "yolo"}, QUIET)
        assert settings.on_non_ff == NonFastForwardPolicy.SKIP

    def test_disabled_scalar(self) -> None:
        """Test that a single disabled remote may be written as a scalar."""
        assert SyncSettings.from_dict({"disabled": "backup"}).disabled == ["backup"]
        assert SyncSettings.from_dict({"disabled": "backup, gitee"}).disabled == [
            "backup",
            "gitee",
        ]

    def test_disabled_must_be_list(self) -> None:
        """Test that a non-list disabled setting is rejected."""
        with pytest.raises(ConfigurationError):
            SyncSettings.from_dict({"disabled": 3})

    def test_load_yaml_settings(self, tmp_path: Path) -> None:
        """Test loading YAML settings."""
        (tmp_path / ".gitsyncrc.yaml").write_text(
            "on_non_ff: rebase\npull_before_push: true\ndisabled:\n  - backup\n"
        )

        data = load_settings_file(project_path=tmp_path)

        assert data == {"on_non_ff": "rebase", "pull_before_push": True, "disabled": ["backup"]}

    def test_load_json_settings(self, tmp_path: Path) -> None:
        """Test loading JSON settings."""
        (tmp_path / ".gitsyncrc.json").write_text(json.dumps({"merge_mirrors": True}))

        assert load_settings_file(project_path=tmp_path) == {"merge_mirrors": True}

    def test_no_settings_file(self, tmp_path: Path) -> None:
        """Test that a missing settings file yields no settings."""
        assert load_settings_file(project_path=tmp_path) == {}

    def test_invalid_settings_file(self, tmp_path: Path) -> None:
        """Test that a broken settings file is an error."""
        (tmp_path / ".gitsyncrc.json").write_text("{not json")

        with pytest.raises(ConfigurationError):
            load_settings_file(project_path=tmp_path)

    def test_settings_must_be_mapping(self, tmp_path: Path) -> None:
        """Test that a top-level list is rejected."""
        path = tmp_path / "settings.yml"
        path.write_text("- rebase\n")

        with pytest.raises(ConfigurationError):
            load_settings_file(path)

    def test_load_env_settings(self) -> None:
        """Test settings from environment variables."""
        settings = load_env_settings({
            "GIT_SYNC_ON_NON_FF": "force",
            "GIT_SYNC_PULL_BEFORE_PUSH": "true",
            "GIT_SYNC_DISABLED": "backup, mirror",
            "GIT_SYNC_VERBOSE": "maybe",
        })

        assert settings == {
            "on_non_ff": "force",
            "pull_before_push": True,
            "disabled": ["backup", "mirror"],
        }

    def test_merge_settings(self) -> None:
        """Test that later settings override earlier ones."""
        merged = merge_settings(
            {"on_non_ff": "rebase", "rebase": True},
            {"on_non_ff": "force"},
        )
        assert merged == {"on_non_ff": "force", "rebase": True}
