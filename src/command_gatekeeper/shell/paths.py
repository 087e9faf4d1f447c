"""Command-aware path extraction and path containment helpers.

Given the tokens of a shell command, :func:`extract_paths` returns the
tokens that name filesystem paths.  The extraction strategy depends on the
command name:

=========================  ================================================
Command                    Paths
=========================  ================================================
``cd``                     first non-flag argument; ``~`` when there is
                           none; ``-`` when a standalone ``-`` is present
``ls``, ``tree``, ``du``   all non-flag arguments, or ``.``
``find``                   leading arguments before the first flag, or ``.``
``grep``, ``rg``           non-flag arguments after the search pattern
file commands              all non-flag arguments
anything else              all non-flag arguments
=========================  ================================================

Known imprecision: flags that consume a value are not special-cased, so
``head -n 10 file`` yields ``["10", "file"]``.  The ``cwd_only`` constraint
is written against this behaviour, and the extra token only ever makes the
constraint stricter.
"""
from __future__ import annotations

import posixpath
from collections.abc import Sequence
from enum import Enum

from command_gatekeeper.permissions.patterns import match_segment
from command_gatekeeper.shell.tokenizer import tokenize

HOME: str = "~"
PREVIOUS_DIR: str = "-"
CURRENT_DIR: str = "."


class CommandKind(str, Enum):
    """Path extraction strategies, one per family of known commands."""

    CHANGE_DIR = "change_dir"
    LISTING = "listing"
    FIND = "find"
    SEARCH = "search"
    FILE = "file"
    OTHER = "other"


_COMMAND_KINDS: dict[str, CommandKind] = {
    "cd": CommandKind.CHANGE_DIR,
    "ls": CommandKind.LISTING,
    "tree": CommandKind.LISTING,
    "du": CommandKind.LISTING,
    "find": CommandKind.FIND,
    "grep": CommandKind.SEARCH,
    "rg": CommandKind.SEARCH,
    **{
        name: CommandKind.FILE
        for name in (
            "cat",
            "head",
            "tail",
            "cp",
            "mv",
            "rm",
            "stat",
            "file",
            "touch",
            "mkdir",
            "rmdir",
            "ln",
            "readlink",
            "realpath",
        )
    },
}


def command_kind(command_name: str) -> CommandKind:
    """Return the extraction strategy for a command name."""
    return _COMMAND_KINDS.get(command_name, CommandKind.OTHER)


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def non_flag_args(args: Sequence[str]) -> list[str]:
    """Return the arguments that do not start with ``-``."""
    return [arg for arg in args if not arg.startswith("-")]


def non_flag_args_after_first(args: Sequence[str]) -> list[str]:
    """Return non-flag arguments, skipping the first (e.g. a grep pattern)."""
    return non_flag_args(args)[1:]


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_paths(tokens: Sequence[str]) -> list[str]:
    """Return the tokens of a tokenized command that represent paths.

    Parameters
    ----------
    tokens:
        Output of :func:`~command_gatekeeper.shell.tokenizer.tokenize`.
        The first token is the command name.

    Returns
    -------
    list[str]
        Path arguments; empty for an empty command.
    """
    if not tokens:
        return []

    args = list(tokens[1:])

    match command_kind(tokens[0]):
        case CommandKind.CHANGE_DIR:
            if not args:
                return [HOME]
            # "-" looks like a flag, so check it before filtering flags out.
            if PREVIOUS_DIR in args:
                return [PREVIOUS_DIR]
            targets = non_flag_args(args)
            return [targets[0]] if targets else [HOME]

        case CommandKind.LISTING:
            return non_flag_args(args) or [CURRENT_DIR]

        case CommandKind.FIND:
            roots: list[str] = []
            for arg in args:
                if arg.startswith("-"):
                    break
                roots.append(arg)
            return roots or [CURRENT_DIR]

        case CommandKind.SEARCH:
            return non_flag_args_after_first(args)

        case CommandKind.FILE:
            return non_flag_args(args)

        case CommandKind.OTHER:
            return non_flag_args(args)


def extract_command_paths(command: str) -> list[str]:
    """Tokenize *command* and return its path arguments."""
    return extract_paths(tokenize(command))


# ---------------------------------------------------------------------------
# Path containment
# ---------------------------------------------------------------------------


def resolve_path(path: str, base: str) -> str:
    """Resolve *path* against *base* to a normalised absolute path.

    Purely lexical: symlinks are not followed and the filesystem is not
    touched.
    """
    return posixpath.normpath(posixpath.join(base, path))


def _normalise_base(base_dir: str) -> str:
    return posixpath.normpath(base_dir) if base_dir else base_dir


def is_path_within(resolved_path: str, base_dir: str) -> bool:
    """Return True if *resolved_path* is a strict descendant of *base_dir*."""
    base = _normalise_base(base_dir)
    try:
        rel = posixpath.relpath(resolved_path, base)
    except ValueError:
        return False
    if rel in ("", ".", "..") or rel.startswith("../"):
        return False
    return not posixpath.isabs(rel)


def is_path_within_or_equal(resolved_path: str, base_dir: str) -> bool:
    """Return True if *resolved_path* equals *base_dir* or lies beneath it."""
    base = _normalise_base(base_dir)
    if posixpath.normpath(resolved_path) == base:
        return True
    return is_path_within(resolved_path, base)


def matching_exclude_pattern(resolved_path: str, patterns: Sequence[str]) -> str | None:
    """Return the first exclude glob matching the basename or any path segment.

    Parameters
    ----------
    resolved_path:
        Absolute, normalised path.
    patterns:
        Globs such as ``".env"`` or ``"*.pem"``.

    Returns
    -------
    str | None
        The matching pattern, or ``None`` when nothing matches.
    """
    segments = [segment for segment in resolved_path.split("/") if segment]
    base = posixpath.basename(resolved_path)

    for pattern in patterns:
        if match_segment(base, pattern):
            return pattern
        for segment in segments:
            if match_segment(segment, pattern):
                return pattern
    return None
