"""kubectl apply: manifests are read by the Simulator from the virtual filesystem."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, result
from kubequest.core.errors import SimulatorError, UsageError
from kubequest.core.outcome import FileRequest

VERBS = ["apply"]


def handle(ctx: Invocation) -> CommandResult:
    if ctx.flag("k", "kustomize"):
        raise UsageError("kustomize directories are not supported in this cluster")
    path = ctx.flag("f", "filename")
    if not path or path == "true":
        raise SimulatorError("error: must specify one of -f and -k")
    return result(FileRequest("apply", path))
