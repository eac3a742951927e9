"""
Shared plumbing for kubectl verb handlers: flag parsing, resource lookup,
table layout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from kubequest.cli import CommandResult
from kubequest.core.cluster import ClusterState, ResourceKind, lookup_kind
from kubequest.core.errors import NotFound, UnknownResourceType, UsageError
from kubequest.core.filesystem import FileSystem
from kubequest.core.outcome import CommandOutcome, Text

# Flags that never take a value; anything else consumes the next token
# unless it looks like another flag.
BOOL_FLAGS = frozenset(
    {
        "A",
        "all-namespaces",
        "all",
        "show-labels",
        "list",
        "w",
        "watch",
        "force",
        "ignore-daemonsets",
        "delete-emptydir-data",
        "overwrite",
        "record",
        "no-headers",
        "i",
        "t",
        "it",
        "ti",
        "stdin",
        "tty",
        "h",
        "help",
        "containers",
        "previous",
        "p",
        "wait",
        "local",
        "client",
    }
)

# Output formats `-o` accepts
OUTPUT_FORMATS = ("json", "name", "wide", "yaml")


@dataclass(frozen=True)
class Invocation:
    """A parsed kubectl command line.

    `args` are the positional arguments after the verb; `command` holds the
    tokens after a bare `--`. Flags are keyed without leading dashes and
    keep every value given, in order.
    """

    verb: str
    args: tuple[str, ...]
    flags: dict[str, tuple[str, ...]]
    state: ClusterState
    command: tuple[str, ...] = ()
    line: str = field(default="", compare=False)
    fs: FileSystem | None = field(default=None, compare=False)

    def flag(self, *names: str, default: str | None = None) -> str | None:
        for name in names:
            if name in self.flags:
                return self.flags[name][-1]
        return default

    def flag_all(self, *names: str) -> list[str]:
        values: list[str] = []
        for name in names:
            values.extend(self.flags.get(name, ()))
        return values

    def has(self, *names: str) -> bool:
        return any(name in self.flags and self.flags[name][-1] != "false" for name in names)

    def arg(self, index: int) -> str | None:
        return self.args[index] if index < len(self.args) else None

    @property
    def namespace(self) -> str:
        return self.flag("n", "namespace") or "default"

    @property
    def all_namespaces(self) -> bool:
        return self.has("A", "all-namespaces")

    @property
    def output(self) -> str | None:
        return self.flag("o", "output")

    @property
    def dry_run(self) -> bool:
        value = self.flag("dry-run")
        return value is not None and value != "none"


def parse(tokens: list[str], state: ClusterState, line: str = "", fs: FileSystem | None = None) -> Invocation:
    """Split `kubectl ...` tokens into verb, positional arguments and flags."""
    flags: dict[str, list[str]] = {}
    positional: list[str] = []
    command: list[str] = []
    i = 1
    while i < len(tokens):
        token = tokens[i]
        if token == "--":
            command = tokens[i + 1 :]
            break
        if token.startswith("-") and len(token) > 1:
            name = token.lstrip("-")
            if "=" in name:
                name, value = name.split("=", 1)
            elif name in BOOL_FLAGS:
                value = "true"
            elif i + 1 < len(tokens) and not tokens[i + 1].startswith("-"):
                value = tokens[i + 1]
                i += 1
            else:
                value = "true"
            flags.setdefault(name, []).append(value)
        else:
            positional.append(token)
        i += 1

    verb = positional[0] if positional else ""
    return Invocation(
        verb=verb,
        args=tuple(positional[1:]),
        flags={k: tuple(v) for k, v in flags.items()},
        state=state,
        command=tuple(command),
        line=line,
        fs=fs,
    )


# === Results ===


def result(output: CommandOutcome | str, state: ClusterState | None = None) -> CommandResult:
    if isinstance(output, str):
        output = Text(output)
    return CommandResult(output, cluster=state)


# === Resource lookup ===


def resolve_kind(type_name: str) -> ResourceKind:
    kind = lookup_kind(type_name)
    if kind is None:
        raise UnknownResourceType(type_name)
    return kind


def split_target(ctx: Invocation, start: int = 0) -> tuple[str | None, str | None]:
    """(type, name) from either `TYPE NAME` or `TYPE/NAME` positional forms."""
    first = ctx.arg(start)
    if first is None:
        return None, None
    if "/" in first:
        type_name, _, name = first.partition("/")
        return type_name, name or None
    return first, ctx.arg(start + 1)


def find_or_raise(state: ClusterState, kind: ResourceKind, name: str, namespace: str) -> dict:
    resource = state.find(kind, name, namespace)
    if resource is None:
        raise NotFound(kind.resource, name)
    return resource


def require(value: str | None, message: str, usage: str | None = None) -> str:
    if not value:
        raise UsageError(message, usage)
    return value


def parse_int(value: str | None, flag_name: str) -> int:
    try:
        return int(str(value))
    except ValueError:
        raise UsageError(f"invalid argument {value!r} for \"--{flag_name}\" flag") from None


def parse_pairs(text: str) -> dict[str, str]:
    """'a=1,b=2' -> {'a': '1', 'b': '2'}; malformed terms are skipped."""
    pairs = {}
    for term in text.split(","):
        key, sep, value = term.partition("=")
        if sep and key.strip():
            pairs[key.strip()] = value.strip()
    return pairs


# === Tables ===


def table(header: list[str], rows: list[list[str]]) -> str:
    """Left-aligned columns separated by three spaces, kubectl tabwriter style."""
    widths = [len(h) for h in header]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))
    lines = []
    for row in [header, *rows]:
        cells = [cell.ljust(widths[i]) for i, cell in enumerate(row)]
        lines.append("   ".join(cells).rstrip())
    return "\n".join(lines)


def age(resource: dict) -> str:
    """Human age of a resource from its creationTimestamp."""
    stamp = resource.get("metadata", {}).get("creationTimestamp")
    if not stamp:
        return "<unknown>"
    try:
        created = datetime.strptime(stamp, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    except ValueError:
        return "<unknown>"
    seconds = max(0, int((datetime.now(timezone.utc) - created).total_seconds()))
    if seconds < 120:
        return f"{seconds}s"
    if seconds < 7200:
        return f"{seconds // 60}m"
    if seconds < 172800:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


def no_resources(namespace: str | None) -> str:
    if namespace is None:
        return "No resources found"
    return f"No resources found in {namespace} namespace."
