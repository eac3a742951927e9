"""
kubectl top: node and pod resource usage.

There is no metrics pipeline, so usage is derived from a hash of each pod's
name plus its requests. The same cluster always reports the same numbers.
"""

from __future__ import annotations

import zlib

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, no_resources, require, result, table
from kubequest.core.cluster import namespace_of
from kubequest.core.errors import NotFound, SimulatorError
from kubequest.core.scheduler import parse_cpu, parse_memory, pod_requests

VERBS = ["top"]

# Baseline usage of the node's own daemons (millicores, MiB)
NODE_OVERHEAD = (120, 640)


def _seed(text: str) -> int:
    return zlib.crc32(text.encode())


def container_usage(pod: dict, container: dict) -> tuple[int, int]:
    """(millicores, MiB) a running container reports."""
    seed = _seed(f"{pod['metadata']['name']}/{container.get('name')}")
    requests = (container.get("resources") or {}).get("requests") or {}
    cpu = int(parse_cpu(requests.get("cpu")) * 1000 * 0.6) + 1 + seed % 15
    memory = int(parse_memory(requests.get("memory")) * 0.7) + 8 + (seed >> 8) % 48
    return cpu, memory


def pod_usage(pod: dict) -> tuple[int, int]:
    cpu = memory = 0
    for container in pod["spec"].get("containers", []):
        c, m = container_usage(pod, container)
        cpu, memory = cpu + c, memory + m
    return cpu, memory


def _running(pods) -> list[dict]:
    return [p for p in pods if p.get("status", {}).get("phase") == "Running"]


def handle(ctx: Invocation) -> CommandResult:
    what = require(ctx.arg(0), "resource type is required", "kubectl top (node | pod) [NAME]")
    if what in ("node", "nodes", "no"):
        return result(_top_nodes(ctx))
    if what in ("pod", "pods", "po"):
        return result(_top_pods(ctx))
    raise SimulatorError(f'Error: unknown resource type "{what}"')


def _top_nodes(ctx: Invocation) -> str:
    state = ctx.state
    nodes = list(state.nodes)
    name = ctx.arg(1)
    if name is not None:
        nodes = [n for n in nodes if n["metadata"]["name"] == name]
        if not nodes:
            raise NotFound("nodes", name)
    rows = []
    for node in nodes:
        node_name = node["metadata"]["name"]
        cpu, memory = NODE_OVERHEAD
        for pod in _running(state.pods):
            if pod["spec"].get("nodeName") == node_name:
                c, m = pod_usage(pod)
                cpu, memory = cpu + c, memory + m
        allocatable = node.get("status", {}).get("allocatable", {})
        cpu_total = parse_cpu(allocatable.get("cpu")) * 1000 or 1
        memory_total = parse_memory(allocatable.get("memory")) or 1
        rows.append(
            [
                node_name,
                f"{cpu}m",
                f"{round(cpu * 100 / cpu_total)}%",
                f"{memory}Mi",
                f"{round(memory * 100 / memory_total)}%",
            ]
        )
    if ctx.flag("sort-by") == "cpu":
        rows.sort(key=lambda r: -int(r[1][:-1]))
    elif ctx.flag("sort-by") == "memory":
        rows.sort(key=lambda r: -int(r[3][:-2]))
    header = ["NAME", "CPU(cores)", "CPU%", "MEMORY(bytes)", "MEMORY%"]
    return table(header, rows)


def _top_pods(ctx: Invocation) -> str:
    state = ctx.state
    namespace = None if ctx.all_namespaces else ctx.namespace
    pods = _running(p for p in state.pods if namespace is None or namespace_of(p) == namespace)
    name = ctx.arg(1)
    if name is not None:
        pods = [p for p in pods if p["metadata"]["name"] == name]
        if not pods:
            raise NotFound("pods", name)
    if not pods:
        return no_resources(namespace)

    containers = ctx.has("containers")
    rows = []
    for pod in pods:
        prefix = [namespace_of(pod)] if namespace is None else []
        if containers:
            for container in pod["spec"].get("containers", []):
                cpu, memory = container_usage(pod, container)
                rows.append(prefix + [pod["metadata"]["name"], container.get("name", ""), f"{cpu}m", f"{memory}Mi"])
        else:
            cpu, memory = pod_usage(pod)
            rows.append(prefix + [pod["metadata"]["name"], f"{cpu}m", f"{memory}Mi"])

    sort_by = ctx.flag("sort-by")
    if sort_by in ("cpu", "memory"):
        column = -2 if sort_by == "cpu" else -1
        rows.sort(key=lambda r: -int(r[column].rstrip("mMi")))

    header = (["NAMESPACE"] if namespace is None else []) + ["NAME"]
    if containers:
        header = (["NAMESPACE"] if namespace is None else []) + ["POD", "NAME"]
    header += ["CPU(cores)", "MEMORY(bytes)"]
    return table(header, rows)
