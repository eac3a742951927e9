"""
Command interpreters for kubequest.

Each interpreter module (or sub-package) exports:
- COMMANDS: list[str] - leading tokens this interpreter owns
- execute(ctx: CommandContext) -> CommandResult - run one command
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Protocol

from kubequest.core.cluster import ClusterState
from kubequest.core.filesystem import FileSystem
from kubequest.core.host import HostState
from kubequest.core.outcome import CommandOutcome, EditorRequest


@dataclass(frozen=True)
class CommandContext:
    """Everything an interpreter may read. Interpreters never mutate it."""

    tokens: list[str]
    line: str
    cluster: ClusterState
    fs: FileSystem
    host: HostState


@dataclass(frozen=True)
class CommandResult:
    """What an interpreter hands back.

    A state field left as None means the interpreter did not change it.
    """

    output: CommandOutcome | EditorRequest
    cluster: ClusterState | None = None
    fs: FileSystem | None = None
    host: HostState | None = None


class Interpreter(Protocol):
    """Protocol for interpreter modules."""

    COMMANDS: list[str]

    def execute(self, ctx: CommandContext) -> CommandResult:
        ...


def _discover_interpreters() -> dict[str, str]:
    """Discover interpreter modules and build command -> module mapping."""
    interpreters = {}
    cli_dir = Path(__file__).parent
    names = [f.stem for f in cli_dir.glob("*.py")]
    names += [d.name for d in cli_dir.iterdir() if (d / "__init__.py").is_file()]
    for module_name in sorted(names):
        if module_name.startswith("_"):
            continue
        module = importlib.import_module(f".{module_name}", package="kubequest.cli")
        for cmd in getattr(module, "COMMANDS", []):
            interpreters[cmd] = module_name
    return interpreters


# Build command mapping at import time
KNOWN_COMMANDS = _discover_interpreters()


def get_interpreter(command_name: str) -> Optional[Interpreter]:
    """
    Get the interpreter module for a leading command token.

    Returns None if no interpreter owns the command.
    """
    module_name = KNOWN_COMMANDS.get(command_name)
    if not module_name:
        return None

    return _load_interpreter(module_name)


@lru_cache(maxsize=32)
def _load_interpreter(module_name: str) -> Interpreter:
    """Load an interpreter module by name (cached within process)."""
    return importlib.import_module(f".{module_name}", package="kubequest.cli")
