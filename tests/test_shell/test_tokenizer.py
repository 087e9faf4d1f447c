"""Tests for the shell tokenizer."""
from __future__ import annotations

import pytest

from command_gatekeeper.shell.tokenizer import tokenize


# ---------------------------------------------------------------------------
# Whitespace splitting
# ---------------------------------------------------------------------------


class TestSplitting:
    def test_simple_command(self) -> None:
        assert tokenize("ls -la src") == ["ls", "-la", "src"]

    def test_runs_of_spaces_and_tabs(self) -> None:
        assert tokenize("ls \t  -la\t\tsrc") == ["ls", "-la", "src"]

    def test_leading_and_trailing_whitespace(self) -> None:
        assert tokenize("   pwd   ") == ["pwd"]

    def test_empty_string(self) -> None:
        assert tokenize("") == []

    def test_whitespace_only(self) -> None:
        assert tokenize(" \t ") == []


# ---------------------------------------------------------------------------
# Quoting
# ---------------------------------------------------------------------------


class TestQuoting:
    def test_single_quotes_keep_spaces(self) -> None:
        assert tokenize("grep -r 'TODO: fix' src") == ["grep", "-r", "TODO: fix", "src"]

    def test_double_quotes_keep_spaces(self) -> None:
        assert tokenize('echo "hello world"') == ["echo", "hello world"]

    def test_other_quote_kind_is_literal(self) -> None:
        assert tokenize("echo \"it's\"") == ["echo", "it's"]

    def test_quotes_join_adjacent_text(self) -> None:
        assert tokenize("cat pre'fix suf'fix") == ["cat", "prefix suffix"]

    def test_empty_quoted_string_contributes_nothing(self) -> None:
        assert tokenize('echo "" done') == ["echo", "done"]
        assert tokenize("echo ''") == ["echo"]

    def test_unterminated_quote_consumes_rest(self) -> None:
        assert tokenize("echo 'unterminated rest") == ["echo", "unterminated rest"]

    def test_backslash_inside_quotes_is_literal(self) -> None:
        assert tokenize(r'echo "a\b"') == ["echo", r"a\b"]


# ---------------------------------------------------------------------------
# Escapes
# ---------------------------------------------------------------------------


class TestEscapes:
    def test_escaped_space_joins_token(self) -> None:
        assert tokenize(r"cat my\ file.txt") == ["cat", "my file.txt"]

    def test_escaped_quote_is_literal(self) -> None:
        assert tokenize(r"echo \"hi\"") == ["echo", '"hi"']

    def test_trailing_backslash_is_dropped(self) -> None:
        assert tokenize("echo abc\\") == ["echo", "abc"]

    @pytest.mark.parametrize("command", ["'", '"', "\\", "a'b\"c\\"])
    def test_never_raises(self, command: str) -> None:
        assert isinstance(tokenize(command), list)
