"""kubectl run: create a single pod from an image."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, parse_int, parse_pairs, require, result
from kubequest.core import config
from kubequest.core.cluster import kind_for
from kubequest.core.errors import AlreadyExists, NotFound
from kubequest.core.objects import new_pod
from kubequest.core.render import to_json, to_yaml

VERBS = ["run"]

USAGE = "kubectl run NAME --image=image [--env=\"key=value\"] [--port=port] [--dry-run=server|client] [--overrides=inline-json] [--command] -- [COMMAND] [args...]"


def pod_template(ctx: Invocation, name: str, image: str) -> tuple[dict, dict]:
    """(labels, pod spec) described by the run flags."""
    labels = parse_pairs(ctx.flag("labels", "l") or "") or {"run": name}
    container: dict = {"name": name, "image": image}
    if ctx.command:
        key = "command" if ctx.has("command") else "args"
        container[key] = list(ctx.command)
    port = ctx.flag("port")
    if port:
        container["ports"] = [{"containerPort": parse_int(port, "port")}]
    env = []
    for pair in ctx.flag_all("env"):
        key, _, value = pair.partition("=")
        env.append({"name": key, "value": value})
    if env:
        container["env"] = env
    container["resources"] = {}
    spec = {
        "containers": [container],
        "dnsPolicy": "ClusterFirst",
        "restartPolicy": ctx.flag("restart", default="Always"),
    }
    return labels, spec


def handle(ctx: Invocation) -> CommandResult:
    name = ctx.arg(0)
    image = ctx.flag("image")
    if not name or not image:
        require(None, "--image is required" if name else "NAME is required for run", USAGE)

    labels, spec = pod_template(ctx, name, image)
    namespace = ctx.namespace

    if ctx.dry_run:
        manifest = {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {"creationTimestamp": None, "labels": labels, "name": name},
            "spec": spec,
            "status": {},
        }
        if ctx.output == "yaml":
            return result(to_yaml(manifest))
        if ctx.output == "json":
            return result(to_json(manifest))
        return result(f"pod/{name} created (dry run)")

    state = ctx.state
    kind = kind_for("Pod")
    if namespace not in state.namespaces:
        raise NotFound("namespaces", namespace)
    if state.find(kind, name, namespace) is not None:
        raise AlreadyExists(kind.resource, name)

    pod = new_pod(name, namespace, labels, spec, state)
    config.log("info", "run", pod=name, namespace=namespace, phase=pod["status"]["phase"])
    return result(f"pod/{name} created", state.with_added(kind, pod))
