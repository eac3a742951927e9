"""
Verbs that reach into a running pod: exec, port-forward, cp.

`kubectl exec` without a command (or with a shell) hands off to the
interactive exec mode; `run_in_container` is the command set that mode
offers, shared with one-shot `exec POD -- CMD`.
"""

from __future__ import annotations

import base64
import binascii
import shlex

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, find_or_raise, require, resolve_kind, result
from kubequest.core import config
from kubequest.core.cluster import ClusterState, kind_for, namespace_of
from kubequest.core.errors import SimulatorError
from kubequest.core.objects import owned_pods
from kubequest.core.outcome import ExecModeRequest

VERBS = ["exec", "port-forward", "cp"]

SHELLS = frozenset({"sh", "bash", "/bin/sh", "/bin/bash"})

ROOT_LISTING = "bin  dev  etc  home  lib  proc  root  sys  tmp  usr  var"

# Directories with canned contents when no volume is mounted there
CANNED_DIRS = {
    "/data": ["file1.txt", "file2.txt"],
    "/mnt": ["file1.txt", "file2.txt"],
    "/config": ["file1.txt", "file2.txt"],
}

CONTAINER_HELP = "Simulated container shell\nAvailable commands: ls, cat, env, pwd, whoami, hostname, echo, exit"


def handle(ctx: Invocation) -> CommandResult:
    if ctx.verb == "exec":
        return _exec(ctx)
    if ctx.verb == "port-forward":
        return _port_forward(ctx)
    return _cp(ctx)


def _target_pod(ctx: Invocation, target: str) -> dict:
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
    raise SimulatorError(f"error: cannot attach to {kind.ref}/{name}: selector has no matching pods")


# === exec ===


def _exec(ctx: Invocation) -> CommandResult:
    target = require(ctx.arg(0), "pod or type/name must be specified", "kubectl exec (POD | TYPE/NAME) [-c CONTAINER] -- COMMAND [args...]")
    pod = _target_pod(ctx, target)
    name = pod["metadata"]["name"]
    container = ctx.flag("c", "container")
    if container is not None and not any(c.get("name") == container for c in pod["spec"].get("containers", [])):
        raise SimulatorError(f'error: unable to upgrade connection: container not found ("{container}")')
    phase = pod.get("status", {}).get("phase")
    if phase in ("Succeeded", "Failed"):
        raise SimulatorError(f"error: cannot exec into a container in a completed pod; current phase is {phase}")
    if phase != "Running":
        raise SimulatorError(f"error: unable to upgrade connection: pod {name} is not running (phase {phase})")

    command = " ".join(ctx.command)
    if not command or command in SHELLS:
        config.log("info", "exec_mode", pod=name, namespace=namespace_of(pod))
        return result(ExecModeRequest(name, namespace_of(pod)))
    return result(run_in_container(command, pod, ctx.state))


def container_env(pod: dict, state: ClusterState) -> list[str]:
    """KEY=VALUE lines a container would see, with ConfigMap and Secret refs resolved."""
    namespace = namespace_of(pod)
    lines = [
        "PATH=/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin",
        f"HOSTNAME={pod['metadata']['name']}",
        "HOME=/root",
    ]
    for container in pod["spec"].get("containers", []):
        for source in container.get("envFrom") or []:
            if "configMapRef" in source:
                data = _data(state, "ConfigMap", source["configMapRef"].get("name"), namespace)
                lines += [f"{k}={v}" for k, v in data.items()]
            if "secretRef" in source:
                data = _data(state, "Secret", source["secretRef"].get("name"), namespace)
                lines += [f"{k}={_decode(v)}" for k, v in data.items()]
        for entry in container.get("env") or []:
            if entry.get("value"):
                lines.append(f"{entry['name']}={entry['value']}")
                continue
            ref = entry.get("valueFrom") or {}
            if "configMapKeyRef" in ref:
                key_ref = ref["configMapKeyRef"]
                value = _data(state, "ConfigMap", key_ref.get("name"), namespace).get(key_ref.get("key"))
                if value:
                    lines.append(f"{entry['name']}={value}")
            elif "secretKeyRef" in ref:
                key_ref = ref["secretKeyRef"]
                value = _data(state, "Secret", key_ref.get("name"), namespace).get(key_ref.get("key"))
                if value:
                    lines.append(f"{entry['name']}={_decode(value)}")
    return lines


def _data(state: ClusterState, kind_name: str, name: str | None, namespace: str) -> dict:
    obj = state.find(kind_for(kind_name), name or "", namespace)
    return (obj or {}).get("data") or {}


def _decode(value: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode()
    except (binascii.Error, UnicodeDecodeError):
        return value


def _mounted_files(pod: dict, state: ClusterState) -> dict[str, dict[str, str]]:
    """mountPath -> {filename: content} for ConfigMap and Secret volumes."""
    volumes = {v.get("name"): v for v in pod["spec"].get("volumes") or []}
    namespace = namespace_of(pod)
    mounts: dict[str, dict[str, str]] = {}
    for container in pod["spec"].get("containers", []):
        for mount in container.get("volumeMounts") or []:
            volume = volumes.get(mount.get("name"), {})
            path = mount.get("mountPath", "").rstrip("/") or "/"
            if "configMap" in volume:
                mounts[path] = dict(_data(state, "ConfigMap", volume["configMap"].get("name"), namespace))
            elif "secret" in volume:
                data = _data(state, "Secret", volume["secret"].get("secretName"), namespace)
                mounts[path] = {k: _decode(v) for k, v in data.items()}
            else:
                mounts.setdefault(path, {})
    return mounts


def run_in_container(line: str, pod: dict, state: ClusterState) -> str:
    """Output of one command typed inside a container shell."""
    try:
        words = shlex.split(line)
    except ValueError:
        words = line.split()
    if not words or words[0] == "help":
        return CONTAINER_HELP
    command, args = words[0], words[1:]

    if command in ("env", "printenv"):
        env = container_env(pod, state)
        if args:
            values = [e.partition("=")[2] for e in env if e.partition("=")[0] in args]
            return "\n".join(values)
        return "\n".join(env)
    if command == "pwd":
        return "/"
    if command == "whoami":
        return "root"
    if command == "hostname":
        return pod["metadata"]["name"]
    if command == "echo":
        return " ".join(args)
    if command == "ls":
        return _ls(args, pod, state)
    if command == "cat":
        if not args:
            return ""
        return "\n".join(_cat(path, pod, state) for path in args)
    return f"sh: {command}: command not found"


def _ls(args: list[str], pod: dict, state: ClusterState) -> str:
    paths = [a for a in args if not a.startswith("-")] or ["/"]
    mounts = _mounted_files(pod, state)
    out = []
    for path in paths:
        path = path.rstrip("/") or "/"
        if path == "/":
            out.append(ROOT_LISTING)
        elif path in mounts:
            out.append("  ".join(sorted(mounts[path])))
        elif path in CANNED_DIRS:
            out.append("  ".join(CANNED_DIRS[path]))
        else:
            out.append(f"ls: cannot access '{path}': No such file or directory")
    return "\n".join(out)


def _cat(path: str, pod: dict, state: ClusterState) -> str:
    directory, _, filename = path.rpartition("/")
    files = _mounted_files(pod, state).get(directory or "/")
    if files is not None:
        if filename in files:
            return files[filename]
        return f"cat: {path}: No such file or directory"
    if path == "/etc/hostname":
        return pod["metadata"]["name"]
    return "# File content (simulated)\nkey=value\nconfig=enabled"


# === port-forward, cp ===


def _port_forward(ctx: Invocation) -> CommandResult:
    usage = "kubectl port-forward TYPE/NAME [options] [LOCAL_PORT:]REMOTE_PORT [...[LOCAL_PORT_N:]REMOTE_PORT_N]"
    target = require(ctx.arg(0), "TYPE/NAME and list of ports are required for port-forward", usage)
    if len(ctx.args) < 2:
        raise SimulatorError("error: TYPE/NAME and list of ports are required for port-forward")
    if "/" in target and target.partition("/")[0] in ("svc", "service", "services"):
        find_or_raise(ctx.state, kind_for("Service"), target.partition("/")[2], ctx.namespace)
    else:
        _target_pod(ctx, target)
    lines = []
    for mapping in ctx.args[1:]:
        local, _, remote = mapping.partition(":")
        remote = remote or local
        local = local or remote
        lines.append(f"Forwarding from 127.0.0.1:{local} -> {remote}")
        lines.append(f"Forwarding from [::1]:{local} -> {remote}")
    return result("\n".join(lines))


def _cp(ctx: Invocation) -> CommandResult:
    source, dest = ctx.arg(0), ctx.arg(1)
    if not source or not dest:
        raise SimulatorError("error: source and destination are required")
    for spec in (source, dest):
        pod_ref, sep, _ = spec.partition(":")
        if sep and pod_ref:
            pod_name = pod_ref.rpartition("/")[2]
            namespace = pod_ref.partition("/")[0] if "/" in pod_ref else ctx.namespace
            find_or_raise(ctx.state, kind_for("Pod"), pod_name, namespace)
    return result(f"Copied {source} to {dest}")
