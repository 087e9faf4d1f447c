"""Tests for path extraction and containment helpers."""
from __future__ import annotations

import pytest

from command_gatekeeper.shell.paths import (
    CommandKind,
    command_kind,
    extract_command_paths,
    extract_paths,
    is_path_within,
    is_path_within_or_equal,
    matching_exclude_pattern,
    resolve_path,
)


# ---------------------------------------------------------------------------
# Command kinds
# ---------------------------------------------------------------------------


class TestCommandKind:
    @pytest.mark.parametrize(
        ("name", "kind"),
        [
            ("cd", CommandKind.CHANGE_DIR),
            ("ls", CommandKind.LISTING),
            ("du", CommandKind.LISTING),
            ("find", CommandKind.FIND),
            ("rg", CommandKind.SEARCH),
            ("rm", CommandKind.FILE),
            ("realpath", CommandKind.FILE),
            ("python", CommandKind.OTHER),
        ],
    )
    def test_kinds(self, name: str, kind: CommandKind) -> None:
        assert command_kind(name) is kind


# ---------------------------------------------------------------------------
# extract_paths
# ---------------------------------------------------------------------------


class TestExtractPaths:
    def test_empty_tokens(self) -> None:
        assert extract_paths([]) == []

    def test_cd_without_argument_is_home(self) -> None:
        assert extract_command_paths("cd") == ["~"]

    def test_cd_first_argument(self) -> None:
        assert extract_command_paths("cd src other") == ["src"]

    def test_cd_dash(self) -> None:
        assert extract_command_paths("cd -") == ["-"]

    def test_cd_flags_only_is_home(self) -> None:
        assert extract_command_paths("cd -P") == ["~"]

    def test_ls_defaults_to_current_dir(self) -> None:
        assert extract_command_paths("ls -la") == ["."]

    def test_ls_multiple_paths(self) -> None:
        assert extract_command_paths("ls -la src tests") == ["src", "tests"]

    def test_tree_defaults_to_current_dir(self) -> None:
        assert extract_command_paths("tree") == ["."]

    def test_find_roots_before_first_flag(self) -> None:
        assert extract_command_paths("find src lib -name '*.py'") == ["src", "lib"]

    def test_find_without_roots(self) -> None:
        assert extract_command_paths("find -name x") == ["."]

    def test_grep_skips_pattern(self) -> None:
        assert extract_command_paths("grep -rn TODO src tests") == ["src", "tests"]

    def test_grep_pattern_only(self) -> None:
        assert extract_command_paths("grep TODO") == []

    def test_file_commands(self) -> None:
        assert extract_command_paths("cp -r a b") == ["a", "b"]

    def test_head_value_flag_imprecision(self) -> None:
        assert extract_command_paths("head -n 10 file.txt") == ["10", "file.txt"]

    def test_unknown_command_non_flag_args(self) -> None:
        assert extract_command_paths("wc -l a.txt b.txt") == ["a.txt", "b.txt"]

    def test_quoted_path(self) -> None:
        assert extract_command_paths("cat 'my file.txt'") == ["my file.txt"]


# ---------------------------------------------------------------------------
# Containment
# ---------------------------------------------------------------------------


class TestContainment:
    def test_resolve_relative(self) -> None:
        assert resolve_path("src/../lib", "/project") == "/project/lib"

    def test_resolve_absolute(self) -> None:
        assert resolve_path("/etc/passwd", "/project") == "/etc/passwd"

    def test_within_strict(self) -> None:
        assert is_path_within("/project/src", "/project")
        assert not is_path_within("/project", "/project")

    def test_sibling_prefix_is_not_within(self) -> None:
        assert not is_path_within("/project-other/x", "/project")

    def test_parent_is_not_within(self) -> None:
        assert not is_path_within("/", "/project")

    def test_within_or_equal(self) -> None:
        assert is_path_within_or_equal("/project", "/project")
        assert is_path_within_or_equal("/project/", "/project")
        assert not is_path_within_or_equal("/etc", "/project")


# ---------------------------------------------------------------------------
# Exclude patterns
# ---------------------------------------------------------------------------


class TestExcludePatterns:
    def test_basename_match(self) -> None:
        assert matching_exclude_pattern("/project/.env", [".env"]) == ".env"

    def test_glob_match(self) -> None:
        assert matching_exclude_pattern("/project/keys/id.pem", ["*.pem"]) == "*.pem"

    def test_segment_match(self) -> None:
        assert matching_exclude_pattern("/project/.git/config", [".git"]) == ".git"

    def test_no_match(self) -> None:
        assert matching_exclude_pattern("/project/src/app.py", [".env", "*.pem"]) is None

    def test_case_sensitive(self) -> None:
        assert matching_exclude_pattern("/project/.ENV", [".env"]) is None
