"""kubectl edit: hand the live object to the Simulator for an editor round trip."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, find_or_raise, resolve_kind, result, split_target
from kubequest.core.errors import SimulatorError
from kubequest.core.outcome import EditRequest
from kubequest.core.patch import editable_kinds

VERBS = ["edit"]


def handle(ctx: Invocation) -> CommandResult:
    type_name, name = split_target(ctx)
    if not type_name or not name:
        raise SimulatorError("Error: usage: kubectl edit RESOURCE NAME")

    kind = resolve_kind(type_name)
    if kind.kind not in editable_kinds():
        supported = ", ".join(k.lower() for k in editable_kinds())
        return result(f'Edit not supported for "{type_name}". Supported types: {supported}')

    find_or_raise(ctx.state, kind, name, ctx.namespace)
    return result(EditRequest(kind.kind, ctx.namespace, name))
