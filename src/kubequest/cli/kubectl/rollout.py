"""
kubectl rollout: status, restart, history, undo, pause, resume.

Revisions are the Deployment's ReplicaSets. Undo copies an older
ReplicaSet's pod template back onto the Deployment and reconciles, which
reuses that ReplicaSet under a new revision number.
"""

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
from kubequest.core.cluster import ResourceKind, edited, now
from kubequest.core.errors import SimulatorError
from kubequest.core.objects import (
    CHANGE_CAUSE_ANNOTATION,
    RESTARTED_AT_ANNOTATION,
    TEMPLATE_HASH_LABEL,
    bump_generation,
    deployment_revisions,
    reconcile_deployment,
    revision_of,
)

VERBS = ["rollout"]

SUBCOMMANDS = ("history", "pause", "restart", "resume", "status", "undo")

USAGE = "kubectl rollout SUBCOMMAND (TYPE NAME | TYPE/NAME) [options]"


def handle(ctx: Invocation) -> CommandResult:
    sub = require(ctx.arg(0), "required subcommand not provided", USAGE)
    if sub not in SUBCOMMANDS:
        raise SimulatorError(f'Error: unknown rollout subcommand "{sub}"')
    type_name, name = split_target(ctx, 1)
    type_name = require(type_name, "required resource not specified", USAGE)
    name = require(name, "resource name is required", USAGE)
    kind = resolve_kind(type_name)
    if kind.kind != "Deployment":
        raise SimulatorError(f'error: no rollout {sub} support for kind "{kind.kind}"')
    deployment = find_or_raise(ctx.state, kind, name, ctx.namespace)
    return _HANDLERS[sub](ctx, kind, deployment)


def _status(ctx: Invocation, kind: ResourceKind, deployment: dict) -> CommandResult:
    name = deployment["metadata"]["name"]
    desired = deployment["spec"].get("replicas", 1)
    ready = deployment.get("status", {}).get("readyReplicas", 0)
    if deployment["spec"].get("paused"):
        return result(f'Waiting for deployment "{name}" rollout to finish: deployment is paused')
    if ready < desired:
        return result(
            f'Waiting for deployment "{name}" rollout to finish: '
            f"{ready} of {desired} updated replicas are available..."
        )
    return result(f'deployment "{name}" successfully rolled out')


def _restart(ctx: Invocation, kind: ResourceKind, deployment: dict) -> CommandResult:
    name = deployment["metadata"]["name"]
    if deployment["spec"].get("paused"):
        raise SimulatorError(
            f'error: deployments.apps "{name}" can\'t restart paused deployment (run rollout resume first)'
        )
    updated = edited(deployment)
    template_meta = updated["spec"].setdefault("template", {}).setdefault("metadata", {})
    template_meta.setdefault("annotations", {})[RESTARTED_AT_ANNOTATION] = now()
    bump_generation(updated)
    state = ctx.state.with_replaced(kind, deployment, updated)
    state = reconcile_deployment(state, name, ctx.namespace)
    config.log("info", "rollout_restart", deployment=name, namespace=ctx.namespace)
    return result(f"{kind.ref}/{name} restarted", state)


def _history(ctx: Invocation, kind: ResourceKind, deployment: dict) -> CommandResult:
    name = deployment["metadata"]["name"]
    revisions = deployment_revisions(ctx.state, deployment)
    wanted = ctx.flag("revision")
    if wanted is not None and wanted != "0":
        number = parse_int(wanted, "revision")
        rs = next((r for r in revisions if revision_of(r) == number), None)
        if rs is None:
            raise SimulatorError("error: unable to find the specified revision")
        return result(f"{kind.ref}/{name} with revision #{number}\n" + _template_summary(rs["spec"]["template"]))

    lines = [f"{kind.ref}/{name} ", "REVISION  CHANGE-CAUSE"]
    for rs in revisions:
        cause = rs["metadata"].get("annotations", {}).get(CHANGE_CAUSE_ANNOTATION, "<none>")
        lines.append(f"{str(revision_of(rs)).ljust(9)} {cause}")
    return result("\n".join(lines))


def _template_summary(template: dict) -> str:
    labels = template.get("metadata", {}).get("labels", {})
    lines = ["Pod Template:", "  Labels:\t" + "\n\t".join(f"{k}={v}" for k, v in sorted(labels.items()))]
    lines.append("  Containers:")
    for container in template.get("spec", {}).get("containers", []):
        lines.append(f"   {container.get('name')}:")
        lines.append(f"    Image:\t{container.get('image')}")
        ports = container.get("ports") or []
        lines.append(
            "    Port:\t" + (f"{ports[0].get('containerPort')}/TCP" if ports else "<none>")
        )
        env = container.get("env") or []
        if env:
            lines.append("    Environment:")
            lines += [f"      {e['name']}:\t{e.get('value', '')}" for e in env]
        else:
            lines.append("    Environment:\t<none>")
    return "\n".join(lines)


def _undo(ctx: Invocation, kind: ResourceKind, deployment: dict) -> CommandResult:
    name = deployment["metadata"]["name"]
    revisions = deployment_revisions(ctx.state, deployment)
    if not revisions:
        raise SimulatorError(f'error: no rollout history found for deployment "{name}"')
    current = max(revision_of(r) for r in revisions)

    wanted = ctx.flag("to-revision")
    if wanted is not None and wanted != "0":
        number = parse_int(wanted, "to-revision")
        target = next((r for r in revisions if revision_of(r) == number), None)
        if target is None:
            raise SimulatorError(f"error: unable to find specified revision {number} in history")
    else:
        older = [r for r in revisions if revision_of(r) < current]
        if not older:
            raise SimulatorError(f'error: no rollout history found for deployment "{name}"')
        target = older[-1]
    if revision_of(target) == current:
        return result(f"{kind.ref}/{name} skipped rollback (current template already matches revision {current})")

    template = edited(target["spec"]["template"])
    template.get("metadata", {}).get("labels", {}).pop(TEMPLATE_HASH_LABEL, None)
    updated = edited(deployment)
    updated["spec"]["template"] = template
    bump_generation(updated)
    state = ctx.state.with_replaced(kind, deployment, updated)
    state = reconcile_deployment(state, name, ctx.namespace)
    config.log("info", "rollout_undo", deployment=name, revision=revision_of(target))
    return result(f"{kind.ref}/{name} rolled back", state)


def _set_paused(ctx: Invocation, kind: ResourceKind, deployment: dict, paused: bool) -> CommandResult:
    name = deployment["metadata"]["name"]
    if bool(deployment["spec"].get("paused")) == paused:
        state_word = "already paused" if paused else "not paused"
        raise SimulatorError(f'error: deployments.apps "{name}" is {state_word}')
    updated = edited(deployment)
    if paused:
        updated["spec"]["paused"] = True
    else:
        updated["spec"].pop("paused", None)
    word = "paused" if paused else "resumed"
    config.log("info", f"rollout_{word}", deployment=name)
    return result(f"{kind.ref}/{name} {word}", ctx.state.with_replaced(kind, deployment, updated))


_HANDLERS = {
    "status": _status,
    "restart": _restart,
    "history": _history,
    "undo": _undo,
    "pause": lambda ctx, kind, dep: _set_paused(ctx, kind, dep, True),
    "resume": lambda ctx, kind, dep: _set_paused(ctx, kind, dep, False),
}
