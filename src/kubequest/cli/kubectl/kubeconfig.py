"""kubectl config: view, current-context, get-contexts, use-context."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import Invocation, result, table
from kubequest.core.errors import SimulatorError
from kubequest.core.render import to_json, to_yaml

VERBS = ["config"]

CONTEXT = "k8s-quest"
SERVER = "https://127.0.0.1:6443"


def kubeconfig(user: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"cluster": {"server": SERVER, "certificate-authority-data": "DATA+OMITTED"}, "name": CONTEXT}],
        "contexts": [{"context": {"cluster": CONTEXT, "user": user}, "name": CONTEXT}],
        "current-context": CONTEXT,
        "preferences": {},
        "users": [
            {
                "name": user,
                "user": {"client-certificate-data": "DATA+OMITTED", "client-key-data": "DATA+OMITTED"},
            }
        ],
    }


def handle(ctx: Invocation) -> CommandResult:
    sub = ctx.arg(0)
    user = ctx.state.current_context.user
    if sub == "view":
        config = kubeconfig(user)
        return result(to_json(config) if ctx.output == "json" else to_yaml(config))
    if sub == "current-context":
        return result(CONTEXT)
    if sub == "get-contexts":
        if ctx.output == "name":
            return result(CONTEXT)
        rows = [["*", CONTEXT, CONTEXT, user, "default"]]
        return result(table(["CURRENT", "NAME", "CLUSTER", "AUTHINFO", "NAMESPACE"], rows))
    if sub == "get-clusters":
        return result(f"NAME\n{CONTEXT}")
    if sub == "use-context":
        return result(f'Switched to context "{ctx.arg(1) or CONTEXT}".')
    raise SimulatorError(f'Error: unknown config subcommand "{sub}"')
