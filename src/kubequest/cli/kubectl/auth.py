"""kubectl auth: can-i and whoami, answered by the RBAC engine."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, require, result, table
from kubequest.core import config
from kubequest.core.errors import SimulatorError
from kubequest.core.rbac import can_i, identity_permissions, parse_service_account

VERBS = ["auth"]

CAN_I_USAGE = "kubectl auth can-i VERB [TYPE | TYPE/NAME | NONRESOURCEURL]"

# `pods/log` names a subresource, not a pod called "log"
SUBRESOURCES = frozenset({"log", "exec", "attach", "status", "scale", "portforward", "proxy", "eviction", "binding"})


def handle(ctx: Invocation) -> CommandResult:
    sub = ctx.arg(0)
    if sub == "can-i":
        return _can_i(ctx)
    if sub == "whoami":
        return _whoami(ctx)
    raise SimulatorError(f'Error: unknown auth subcommand "{sub}"')


def _can_i(ctx: Invocation) -> CommandResult:
    as_user = ctx.flag("as")
    as_groups = ctx.flag_all("as-group") or None
    if ctx.has("list"):
        permissions = identity_permissions(ctx.state, ctx.namespace, as_user, as_groups)
        rows = [[resource, "[]", "[]", "[" + " ".join(verbs) + "]"] for resource, verbs in permissions]
        return result(table(["Resources", "Non-Resource URLs", "Resource Names", "Verbs"], rows))

    verb = require(ctx.arg(1), "you must specify two arguments: verb resource or verb resource/resourceName", CAN_I_USAGE)
    target = require(ctx.arg(2), "you must specify two arguments: verb resource or verb resource/resourceName", CAN_I_USAGE)
    resource, _, resource_name = target.partition("/")
    if resource_name in SUBRESOURCES:
        resource, resource_name = target, ""
    subresource = ctx.flag("subresource")
    if subresource and "/" not in resource:
        resource = f"{resource}/{subresource}"
    if ctx.arg(3) and not resource_name:
        resource_name = ctx.arg(3)
    namespace = None if ctx.all_namespaces else ctx.namespace
    decision = can_i(
        verb,
        resource,
        ctx.state,
        namespace=namespace,
        resource_name=resource_name or None,
        as_user=as_user,
        as_groups=as_groups,
    )
    config.log("debug", "can_i", verb=verb, resource=target, allowed=decision.allowed, reason=decision.reason)
    return result("yes" if decision.allowed else "no")


def _whoami(ctx: Invocation) -> CommandResult:
    auth = ctx.state.current_context
    user = auth.user
    if auth.service_account:
        user = auth.service_account
        if parse_service_account(user) is None:
            user = f"system:serviceaccount:default:{user}"
    rows = [["Username", user], ["Groups", "[" + " ".join(auth.groups) + "]"]]
    return result(table(["ATTRIBUTE", "VALUE"], rows))
