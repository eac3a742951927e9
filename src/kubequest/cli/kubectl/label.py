"""kubectl label and kubectl annotate."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import (
    Invocation,
    find_or_raise,
    require,
    resolve_kind,
    result,
)
from kubequest.core import config
from kubequest.core.cluster import edited
from kubequest.core.errors import SimulatorError, UsageError

VERBS = ["label", "annotate"]


def parse_changes(terms: list[str]) -> tuple[dict[str, str], list[str]]:
    """Split `key=value` and `key-` terms into (updates, removals)."""
    updates: dict[str, str] = {}
    removals: list[str] = []
    for term in terms:
        if "=" in term:
            key, _, value = term.partition("=")
            updates[key] = value
        elif term.endswith("-"):
            removals.append(term[:-1])
        else:
            raise UsageError(f"invalid label spec: {term}")
    return updates, removals


def handle(ctx: Invocation) -> CommandResult:
    field = "labels" if ctx.verb == "label" else "annotations"
    past = "labeled" if ctx.verb == "label" else "annotated"
    usage = f"kubectl {ctx.verb} [--overwrite] (-f FILENAME | TYPE NAME) KEY_1=VAL_1 ... KEY_N=VAL_N"

    first = require(ctx.arg(0), "you must specify the type of resource", usage)
    if "/" in first:
        type_name, _, name = first.partition("/")
        terms = list(ctx.args[1:])
    else:
        type_name, name = first, ctx.arg(1)
        terms = list(ctx.args[2:])
    name = require(name, "resource name is required", usage)
    if not terms:
        raise UsageError(f"at least one {field[:-1]} update is required", usage)
    updates, removals = parse_changes(terms)

    kind = resolve_kind(type_name)
    state = ctx.state
    live = find_or_raise(state, kind, name, ctx.namespace)
    current = live["metadata"].get(field) or {}

    if not ctx.has("overwrite"):
        for key, value in updates.items():
            if key in current and current[key] != value:
                raise SimulatorError(
                    f"error: '{key}' already has a value ({current[key]}), and --overwrite is false"
                )

    merged = {**current, **updates}
    for key in removals:
        merged.pop(key, None)
    if merged == current:
        return result(f"{kind.ref}/{name} not {past}")

    updated = edited(live)
    updated["metadata"][field] = merged
    if not merged:
        del updated["metadata"][field]
    config.log("info", ctx.verb, kind=kind.kind, name=name, namespace=ctx.namespace)
    return result(f"{kind.ref}/{name} {past}", state.with_replaced(kind, live, updated))
