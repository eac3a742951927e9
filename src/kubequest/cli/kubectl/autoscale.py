"""kubectl autoscale: create a HorizontalPodAutoscaler for a workload."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import (
    Invocation,
    find_or_raise,
    parse_int,
    require,
    resolve_kind,
    result,
    split_target,
)
from kubequest.core import config
from kubequest.core.cluster import kind_for
from kubequest.core.errors import AlreadyExists, SimulatorError
from kubequest.core.objects import metadata
from kubequest.core.render import to_json, to_yaml

VERBS = ["autoscale"]

USAGE = "kubectl autoscale (-f FILENAME | TYPE NAME | TYPE/NAME) [--min=MINPODS] --max=MAXPODS [--cpu-percent=CPU]"

SCALE_TARGETS = ("Deployment", "ReplicaSet", "StatefulSet")


def handle(ctx: Invocation) -> CommandResult:
    type_name, name = split_target(ctx)
    type_name = require(type_name, "one or more resources must be specified", USAGE)
    name = require(name, "resource name is required", USAGE)
    kind = resolve_kind(type_name)
    if kind.kind not in SCALE_TARGETS:
        raise SimulatorError(f"error: cannot autoscale a {kind.kind}: not a scalable resource")

    minimum = parse_int(ctx.flag("min", default="1"), "min")
    maximum = parse_int(ctx.flag("max", default="10"), "max")
    if maximum < 1:
        raise SimulatorError("error: --max=MAXPODS is required and must be at least 1")
    if minimum > maximum:
        raise SimulatorError(f"error: --max=MAXPODS must be larger or equal to --min=MINPODS, max: {maximum}, min: {minimum}")
    cpu = ctx.flag("cpu-percent", "cpu", default="80").rstrip("%")
    percent = parse_int(cpu, "cpu-percent")

    state = ctx.state
    namespace = ctx.namespace
    target = find_or_raise(state, kind, name, namespace)
    hpa_kind = kind_for("HorizontalPodAutoscaler")
    hpa_name = ctx.flag("name") or name
    if state.find(hpa_kind, hpa_name, namespace) is not None:
        raise AlreadyExists(hpa_kind.resource, hpa_name)

    current = target["spec"].get("replicas", 1)
    hpa = {
        "apiVersion": "autoscaling/v2",
        "kind": "HorizontalPodAutoscaler",
        "metadata": metadata(hpa_name, namespace),
        "spec": {
            "scaleTargetRef": {"apiVersion": kind.api_version, "kind": kind.kind, "name": name},
            "minReplicas": minimum,
            "maxReplicas": maximum,
            "metrics": [
                {
                    "type": "Resource",
                    "resource": {
                        "name": "cpu",
                        "target": {"type": "Utilization", "averageUtilization": percent},
                    },
                }
            ],
        },
        "status": {"currentReplicas": current, "desiredReplicas": min(max(current, minimum), maximum)},
    }

    if ctx.dry_run:
        if ctx.output == "yaml":
            return result(to_yaml(hpa))
        if ctx.output == "json":
            return result(to_json(hpa))
        return result(f"{hpa_kind.ref}/{hpa_name} autoscaled (dry run)")

    config.log("info", "autoscale", target=name, hpa=hpa_name, min=minimum, max=maximum)
    return result(f"{hpa_kind.ref}/{hpa_name} autoscaled", state.with_added(hpa_kind, hpa))
