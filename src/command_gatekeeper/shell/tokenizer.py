"""Shell-like tokenizer for command strings.

Splits a raw command line into tokens the way a POSIX shell would for the
purpose of flag and path extraction.  This is *not* a shell grammar: there
is no expansion, no pipelines and no subshells.

Rules
-----
- Runs of spaces and tabs outside quotes separate tokens.
- ``'...'`` and ``"..."`` spans are taken literally; only the matching
  quote character closes the span, so the other quote kind is kept
  verbatim inside it.
- A backslash outside quotes escapes the next character (including a
  space).  Inside quotes a backslash is an ordinary character.
- An empty quoted string (``""`` or ``''``) contributes no token.
- An unterminated quote consumes the rest of the string as if it had
  been closed.

Example
-------
>>> tokenize("grep -r 'TODO: fix' src")
['grep', '-r', 'TODO: fix', 'src']
>>> tokenize(r"cat my\\ file.txt")
['cat', 'my file.txt']
"""
from __future__ import annotations

_QUOTES: frozenset[str] = frozenset({"'", '"'})
_SEPARATORS: frozenset[str] = frozenset({" ", "\t"})


def tokenize(command: str) -> list[str]:
    """Split *command* into shell-like tokens.

    Parameters
    ----------
    command:
        The raw command line.

    Returns
    -------
    list[str]
        Tokens in order of appearance.  Never raises, whatever the input.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_quote: str | None = None
    escape_next = False

    for char in command:
        if escape_next:
            current.append(char)
            escape_next = False
            continue

        if char == "\\" and in_quote is None:
            escape_next = True
            continue

        if in_quote is not None:
            if char == in_quote:
                in_quote = None
            else:
                current.append(char)
        elif char in _QUOTES:
            in_quote = char
        elif char in _SEPARATORS:
            if current:
                tokens.append("".join(current))
                current = []
        else:
            current.append(char)

    if current:
        tokens.append("".join(current))
    return tokens
