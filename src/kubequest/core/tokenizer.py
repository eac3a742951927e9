"""
Command-line tokenization shared by every interpreter.

Quote-aware whitespace splitting with no knowledge of flags or semantics.
Single- and double-quoted spans become part of one token and the quotes
themselves are consumed. Backslash escapes follow the shell.
"""

from __future__ import annotations

import re

QUOTES = frozenset({'"', "'"})
DQUOTE_ESCAPES = frozenset({'"', "\\", "$", "`"})

_ENV_REF = re.compile(r"\$\{?([A-Za-z_][A-Za-z0-9_]*)\}?")


def tokenize(command: str) -> list[str]:
    """Split a command line into tokens.

    A backslash outside quotes keeps the next character literal. Inside
    double quotes it only escapes `"`, `\\`, `$` and a backquote.
    """
    tokens: list[str] = []
    current: list[str] = []
    quote: str | None = None
    in_token = False
    escaped = False

    for char in command.strip():
        if escaped:
            if quote == '"' and char not in DQUOTE_ESCAPES:
                current.append("\\")
            current.append(char)
            escaped = False
        elif char == "\\" and quote != "'":
            escaped = True
            in_token = True
        elif quote is None and char in QUOTES:
            quote = char
            in_token = True
        elif quote is not None and char == quote:
            quote = None
        elif quote is None and char.isspace():
            if in_token:
                tokens.append("".join(current))
                current = []
                in_token = False
        else:
            current.append(char)
            in_token = True

    if escaped:
        current.append("\\")
    if in_token:
        tokens.append("".join(current))
    return tokens


def expand_env_vars(command: str, env: dict[str, str]) -> str:
    """Replace $VAR and ${VAR} with values from env.

    Unknown variables are left as written.
    """

    def _sub(match: re.Match) -> str:
        return env.get(match.group(1), match.group(0))

    return _ENV_REF.sub(_sub, command)


def split_flags(tokens: list[str]) -> tuple[list[str], list[str]]:
    """Partition tokens into (flags, operands) by a leading dash."""
    flags = [t for t in tokens if t.startswith("-") and t != "-"]
    operands = [t for t in tokens if not t.startswith("-") or t == "-"]
    return flags, operands
