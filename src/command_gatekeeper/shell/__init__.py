"""Shell command helpers: tokenizing and path-argument extraction."""
from __future__ import annotations

from command_gatekeeper.shell.paths import extract_command_paths, extract_paths
from command_gatekeeper.shell.tokenizer import tokenize

__all__ = [
    "extract_command_paths",
    "extract_paths",
    "tokenize",
]
