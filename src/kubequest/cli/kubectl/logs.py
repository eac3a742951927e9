"""
kubectl logs.

Pods have no real processes, so logs are written from the pod's phase and
spec. A crash-looping pod whose required env var is empty names the
variable, which is the clue the CrashLoopBackOff exercises hinge on.
"""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, find_or_raise, parse_int, require, resolve_kind, result
from kubequest.core.cluster import kind_for, namespace_of
from kubequest.core.errors import SimulatorError
from kubequest.core.objects import owned_pods

VERBS = ["logs", "log"]

USAGE = "kubectl logs [-f] [-p] (POD | TYPE/NAME) [-c CONTAINER] [options]"


def handle(ctx: Invocation) -> CommandResult:
    # `-f POD` parses as a flag value, so fall back to it
    target = ctx.arg(0)
    if target is None and ctx.flag("f", "follow") not in (None, "true"):
        target = ctx.flag("f", "follow")
    target = require(target, "expected POD or TYPE/NAME is a required argument for the logs command", USAGE)

    pod = _resolve_pod(ctx, target)
    containers = pod["spec"].get("containers", [])
    container_name = ctx.flag("c", "container")
    if container_name is None and len(ctx.args) > 1:
        container_name = ctx.args[1]
    if container_name is not None:
        container = next((c for c in containers if c.get("name") == container_name), None)
        if container is None:
            raise SimulatorError(
                f'error: container {container_name} is not valid for pod {pod["metadata"]["name"]}'
            )
    else:
        container = containers[0] if containers else {"name": "app"}

    lines = pod_log(pod, container)
    tail = ctx.flag("tail")
    if tail is not None:
        count = parse_int(tail, "tail")
        if count >= 0:
            lines = lines[-count:] if count else []
    return result("\n".join(lines))


def _resolve_pod(ctx: Invocation, target: str) -> dict:
    if "/" not in target:
        return find_or_raise(ctx.state, kind_for("Pod"), target, ctx.namespace)
    type_name, _, name = target.partition("/")
    kind = resolve_kind(type_name)
    resource = find_or_raise(ctx.state, kind, name, ctx.namespace)
    if kind.kind == "Pod":
        return resource
    if kind.kind == "Deployment":
        pods = owned_pods(ctx.state, resource)
        if pods:
            return pods[0]
    raise SimulatorError(f"error: cannot get logs from {kind.ref}/{name}: no pods found")


def _stamp(pod: dict) -> str:
    started = pod.get("status", {}).get("startTime") or pod["metadata"].get("creationTimestamp", "")
    return started.replace("T", " ").rstrip("Z") or "1970-01-01 00:00:00"


def pod_log(pod: dict, container: dict) -> list[str]:
    """Log lines for a container, or a one-line server error when it never started."""
    phase = pod.get("status", {}).get("phase")
    name = pod["metadata"]["name"]
    ts = _stamp(pod)

    if phase == "ImagePullBackOff":
        return [
            f'Error from server (BadRequest): container "{container.get("name")}" in pod "{name}" '
            "is waiting to start: image can't be pulled"
        ]
    if phase == "Pending":
        return [
            f'Error from server (BadRequest): container "{container.get("name")}" in pod "{name}" '
            "is waiting to start: ContainerCreating"
        ]
    if phase == "CrashLoopBackOff":
        empty = next(
            (e for e in container.get("env") or [] if "valueFrom" not in e and not e.get("value")),
            None,
        )
        if empty is not None:
            return [
                f"{ts} INFO  Starting application...",
                f"{ts} INFO  Loading configuration...",
                f"{ts} ERROR Configuration error: Environment variable '{empty['name']}' is required but empty",
                f"{ts} ERROR Failed to connect to database: host cannot be empty",
                f"{ts} FATAL Application failed to start",
                f"{ts} FATAL Exit code: 1",
            ]
        return [
            f"{ts} INFO  Starting application...",
            f"{ts} ERROR Uncaught exception: Configuration validation failed",
            f"{ts} ERROR Stack trace:",
            "    at validateConfig (/app/config.js:42)",
            "    at main (/app/index.js:15)",
            f"{ts} FATAL Application crashed",
            f"{ts} FATAL Exit code: 1",
        ]
    if phase in ("Error", "Failed"):
        return [
            f"{ts} ERROR Application terminated with error",
            f"{ts} FATAL Exit code: 1",
        ]

    ports = container.get("ports") or []
    port = ports[0].get("containerPort", 80) if ports else 80
    lines = [
        f"{ts} INFO  Starting {container.get('image', 'unknown')}...",
        f"{ts} INFO  Loading configuration...",
    ]
    if any(e.get("name") in ("DB_HOST", "DATABASE_URL") for e in container.get("env") or []):
        lines += [
            f"{ts} INFO  Connecting to database...",
            f"{ts} INFO  Database connection established",
        ]
    lines += [
        f"{ts} INFO  Server started successfully",
        f"{ts} INFO  Listening on port {port}",
        f"{ts} INFO  Pod {name} ready in namespace {namespace_of(pod)}",
    ]
    return lines
