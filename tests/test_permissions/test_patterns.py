"""Tests for permission glob compilation."""
from __future__ import annotations

from command_gatekeeper.permissions.patterns import (
    compile_pattern,
    match_segment,
    matches_any_pattern,
)


class TestCompilePattern:
    def test_exact_literal(self) -> None:
        assert compile_pattern("pwd").match("pwd")

    def test_anchored_both_ends(self) -> None:
        assert not compile_pattern("ls").match("ls -la")
        assert not compile_pattern("ls*").match("sudo ls")

    def test_wildcard_matches_empty(self) -> None:
        assert compile_pattern("git status*").match("git status")

    def test_wildcard_in_middle(self) -> None:
        assert compile_pattern("git * --help").match("git commit --help")

    def test_case_insensitive(self) -> None:
        assert compile_pattern("Docker*").match("DOCKER RUN")

    def test_metacharacters_are_literal(self) -> None:
        pattern = compile_pattern("echo (a+b)?")
        assert pattern.match("echo (a+b)?")
        assert not pattern.match("echo aab")

    def test_dot_is_literal(self) -> None:
        assert not compile_pattern("cat a.txt").match("cat abtxt")

    def test_empty_pattern_matches_only_empty(self) -> None:
        assert compile_pattern("").match("")
        assert not compile_pattern("").match("x")

    def test_trailing_newline_not_absorbed(self) -> None:
        assert not compile_pattern("ls").match("ls\n")

    def test_wildcard_does_not_span_lines(self) -> None:
        assert not compile_pattern("echo *").match("echo hi\nrm -rf /")

    def test_cached(self) -> None:
        assert compile_pattern("cache me*") is compile_pattern("cache me*")


class TestMatchHelpers:
    def test_matches_any(self) -> None:
        assert matches_any_pattern("node:20", ["python:*", "node:*"])

    def test_matches_none(self) -> None:
        assert not matches_any_pattern("ubuntu", ["python:*", "node:*"])

    def test_empty_pattern_list(self) -> None:
        assert not matches_any_pattern("anything", [])

    def test_match_segment_case_sensitive(self) -> None:
        assert match_segment("id.pem", "*.pem")
        assert not match_segment("ID.PEM", "*.pem")
