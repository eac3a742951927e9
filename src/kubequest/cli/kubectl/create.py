"""
kubectl create.

`create -f` hands the file back to the Simulator. Every other form builds
one object from flags; subcommands register themselves in GENERATORS.
"""

from __future__ import annotations

import base64
import re
from typing import Callable

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import (
    Invocation,
    parse_int,
    parse_pairs,
    require,
    resolve_kind,
    result,
)
from kubequest.core import config
from kubequest.core.cluster import ClusterState, kind_for, namespace_of
from kubequest.core.errors import AlreadyExists, NotFound, UsageError
from kubequest.core.filesystem import read_file, resolve
from kubequest.core.objects import (
    generate_uid,
    metadata,
    new_deployment,
    new_service,
    reconcile_deployment,
)
from kubequest.core.outcome import FileRequest
from kubequest.core.rbac import (
    make_cluster_role,
    make_cluster_role_binding,
    make_role,
    make_role_binding,
    make_rules,
)
from kubequest.core.render import to_json, to_yaml

VERBS = ["create"]

Generator = Callable[[Invocation, str], dict]

GENERATORS: dict[str, Generator] = {}
ALIASES = {
    "deploy": "deployment",
    "svc": "service",
    "cm": "configmap",
    "ns": "namespace",
    "sa": "serviceaccount",
    "ing": "ingress",
    "pc": "priorityclass",
    "cj": "cronjob",
    "resourcequota": "quota",
}

USAGES = {
    "deployment": "kubectl create deployment NAME --image=image -- [COMMAND] [args...] [options]",
    "service": "kubectl create service clusterip|nodeport|loadbalancer NAME [--tcp=<port>:<targetPort>] [options]",
    "configmap": "kubectl create configmap NAME [--from-file=[key=]source] [--from-literal=key1=value1] [--dry-run=server|client|none] [options]",
    "secret": "kubectl create secret generic|tls|docker-registry NAME [options]",
    "ingress": "kubectl create ingress NAME --rule=host/path=service:port[,tls[=secret]] [options]",
    "role": "kubectl create role NAME --verb=verb --resource=resource.group/subresource [--resource-name=resourcename] [options]",
    "rolebinding": "kubectl create rolebinding NAME --clusterrole=NAME|--role=NAME [--user=username] [--group=groupname] [--serviceaccount=namespace:serviceaccountname] [options]",
    "job": "kubectl create job NAME --image=image [--from=cronjob/name] -- [COMMAND] [args...] [options]",
    "cronjob": "kubectl create cronjob NAME --image=image --schedule='0/5 * * * ?' -- [COMMAND] [args...] [options]",
    "priorityclass": "kubectl create priorityclass NAME --value=VALUE --global-default=BOOL [options]",
    "quota": "kubectl create quota NAME [--hard=key1=value1,key2=value2] [options]",
}


def generator(*names: str):
    def register(fn: Generator) -> Generator:
        for name in names:
            GENERATORS[name] = fn
        return fn

    return register


def handle(ctx: Invocation) -> CommandResult:
    path = ctx.flag("f", "filename")
    if path:
        return result(FileRequest("create", path))

    subtype = require(ctx.arg(0), "must specify one of -f and -k")
    subtype = ALIASES.get(subtype, subtype)
    if subtype == "token":
        return _token(ctx)
    fn = GENERATORS.get(subtype)
    if fn is None:
        known = ", ".join(sorted(GENERATORS))
        return result(f'Error: unknown resource type "{subtype}"\nKnown resources: {known}')

    name_index = 2 if subtype in ("service", "secret") else 1
    name = require(ctx.arg(name_index), f"{subtype} name is required", USAGES.get(subtype))
    obj = fn(ctx, name)
    kind = kind_for(obj["kind"])

    if ctx.dry_run:
        view = _dry_run_view(obj)
        if ctx.output == "yaml":
            return result(to_yaml(view))
        if ctx.output == "json":
            return result(to_json(view))
        return result(f"{kind.ref}/{name} created (dry run)")

    state = _store(ctx.state, obj)
    config.log("info", "create", kind=obj["kind"], name=name, namespace=ctx.namespace)
    if ctx.output == "name":
        return result(f"{kind.ref}/{name}", state)
    return result(f"{kind.ref}/{name} created", state)


def _store(state: ClusterState, obj: dict) -> ClusterState:
    kind = kind_for(obj["kind"])
    name = obj["metadata"]["name"]
    if kind.kind == "Namespace":
        if name in state.namespaces:
            raise AlreadyExists("namespaces", name)
        return state.with_namespace(name)

    namespace = namespace_of(obj)
    if kind.namespaced and namespace not in state.namespaces:
        raise NotFound("namespaces", namespace)
    if state.find(kind, name, namespace) is not None:
        raise AlreadyExists(kind.resource, name)
    state = state.with_added(kind, obj)
    if kind.kind == "Deployment":
        state = reconcile_deployment(state, name, namespace)
    return state


def _dry_run_view(obj: dict) -> dict:
    """The object as the client would send it, without server-populated fields."""
    view = dict(obj)
    meta = {k: v for k, v in obj["metadata"].items() if k not in ("uid", "generation")}
    meta["creationTimestamp"] = None
    view["metadata"] = meta
    if "status" in obj or obj["kind"] in ("Deployment", "Service", "Job", "CronJob"):
        view["status"] = {}
    return view


def _namespaced_meta(ctx: Invocation, name: str, labels: dict | None = None) -> dict:
    return metadata(name, ctx.namespace, labels)


def _csv(values: list[str]) -> list[str]:
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


# === Workloads ===

_IMAGE_NAME = re.compile(r"[^a-z0-9-]+")


def container_name(image: str) -> str:
    """nginx:1.25 -> nginx, registry.k8s.io/pause@sha256:... -> pause."""
    base = image.rsplit("/", 1)[-1].split("@", 1)[0].split(":", 1)[0]
    return _IMAGE_NAME.sub("-", base.lower()).strip("-") or "container"


def _containers(ctx: Invocation, default_name: str | None = None) -> list[dict]:
    images = ctx.flag_all("image")
    if not images:
        raise UsageError("required flag(s) \"image\" not set")
    containers = []
    for image in images:
        container: dict = {"name": default_name or container_name(image), "image": image}
        port = ctx.flag("port")
        if port:
            container["ports"] = [{"containerPort": parse_int(port, "port")}]
        if ctx.command:
            container["command"] = list(ctx.command)
        container["resources"] = {}
        containers.append(container)
    return containers


@generator("deployment")
def _deployment(ctx: Invocation, name: str) -> dict:
    if not ctx.flag_all("image"):
        raise UsageError("--image flag is required", USAGES["deployment"])
    replicas = parse_int(ctx.flag("replicas", default="1"), "replicas")
    return new_deployment(name, ctx.namespace, _containers(ctx), replicas=replicas)


def _job_template(ctx: Invocation, name: str) -> dict:
    return {
        "spec": {
            "containers": _containers(ctx, default_name=name),
            "restartPolicy": "Never",
        }
    }


@generator("job")
def _job(ctx: Invocation, name: str) -> dict:
    source = ctx.flag("from")
    if source:
        kind_name, _, source_name = source.partition("/")
        if resolve_kind(kind_name).kind != "CronJob":
            raise UsageError(f"from must be an existing cronjob: {source}")
        cron = ctx.state.find(kind_for("CronJob"), source_name, ctx.namespace)
        if cron is None:
            raise NotFound("cronjobs.batch", source_name)
        template = cron["spec"]["jobTemplate"]["spec"]["template"]
    else:
        template = _job_template(ctx, name)
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": _namespaced_meta(ctx, name),
        "spec": {"completions": 1, "parallelism": 1, "backoffLimit": 6, "template": template},
        "status": {"succeeded": 1},
    }


@generator("cronjob")
def _cron_job(ctx: Invocation, name: str) -> dict:
    schedule = require(ctx.flag("schedule"), "--schedule must be specified", USAGES["cronjob"])
    return {
        "apiVersion": "batch/v1",
        "kind": "CronJob",
        "metadata": _namespaced_meta(ctx, name),
        "spec": {
            "schedule": schedule,
            "suspend": False,
            "jobTemplate": {"spec": {"template": _job_template(ctx, name)}},
        },
        "status": {},
    }


# === Services ===

_SERVICE_TYPES = {"clusterip": "ClusterIP", "nodeport": "NodePort", "loadbalancer": "LoadBalancer"}


def _tcp_ports(ctx: Invocation) -> list[dict]:
    ports = []
    for spec in _csv(ctx.flag_all("tcp")):
        port, _, target = spec.partition(":")
        ports.append(
            {
                "name": f"{port}-{target or port}",
                "port": parse_int(port, "tcp"),
                "targetPort": parse_int(target or port, "tcp"),
                "protocol": "TCP",
            }
        )
    return ports


@generator("service")
def _service(ctx: Invocation, name: str) -> dict:
    service_type = _SERVICE_TYPES.get((ctx.arg(1) or "").lower())
    if service_type is None:
        raise UsageError("must specify one of clusterip, nodeport or loadbalancer", USAGES["service"])
    ports = _tcp_ports(ctx)
    if not ports:
        raise UsageError("at least one --tcp port must be specified", USAGES["service"])
    node_port = ctx.flag("node-port")
    if node_port and service_type == "NodePort":
        ports[0]["nodePort"] = parse_int(node_port, "node-port")
    return new_service(
        name,
        ctx.namespace,
        {"app": name},
        ports,
        ctx.state,
        service_type=service_type,
        labels={"app": name},
    )


@generator("ingress")
def _ingress(ctx: Invocation, name: str) -> dict:
    rules: dict[str, list[dict]] = {}
    tls_hosts: dict[str, str] = {}
    for raw in ctx.flag_all("rule"):
        rule, _, options = raw.partition(",")
        target, sep, backend = rule.partition("=")
        if not sep:
            raise UsageError(f"rule {raw} is invalid and should be in format host/path=svcname:svcport[,tls[=secret]]", USAGES["ingress"])
        host, slash, path = target.partition("/")
        service, _, port = backend.partition(":")
        path_type = "Prefix" if path.endswith("*") else "Exact"
        port_ref = {"number": int(port)} if port.isdigit() else {"name": port}
        rules.setdefault(host, []).append(
            {
                "path": "/" + path.rstrip("*") if slash else "/",
                "pathType": path_type,
                "backend": {"service": {"name": service, "port": port_ref}},
            }
        )
        if options.startswith("tls"):
            tls_hosts[host] = options.partition("=")[2]
    if not rules:
        raise UsageError("at least one rule must be specified", USAGES["ingress"])
    spec: dict = {
        "rules": [
            {**({"host": host} if host else {}), "http": {"paths": paths}}
            for host, paths in rules.items()
        ]
    }
    if ctx.flag("class"):
        spec = {"ingressClassName": ctx.flag("class"), **spec}
    if tls_hosts:
        spec["tls"] = [
            {"hosts": [host], **({"secretName": secret} if secret else {})}
            for host, secret in tls_hosts.items()
        ]
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": _namespaced_meta(ctx, name),
        "spec": spec,
        "status": {"loadBalancer": {}},
    }


# === Configuration ===


def _file_entries(ctx: Invocation, sources: list[str]) -> dict[str, str]:
    entries = {}
    for source in sources:
        key, sep, path = source.partition("=")
        if not sep:
            path, key = source, source.rstrip("/").rsplit("/", 1)[-1]
        content = read_file(ctx.fs, resolve(ctx.fs, path)) if ctx.fs is not None else None
        if content is None:
            raise UsageError(f"error reading {path}: no such file or directory")
        entries[key] = content
    return entries


def _literals(ctx: Invocation) -> dict[str, str]:
    entries = {}
    for literal in ctx.flag_all("from-literal"):
        key, sep, value = literal.partition("=")
        if not sep or not key:
            raise UsageError(f"invalid literal source {literal}, expected key=value")
        entries[key] = value
    return entries


@generator("configmap")
def _config_map(ctx: Invocation, name: str) -> dict:
    data = {**_file_entries(ctx, ctx.flag_all("from-file")), **_literals(ctx)}
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _namespaced_meta(ctx, name),
        "data": data,
    }


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


@generator("secret")
def _secret(ctx: Invocation, name: str) -> dict:
    secret_type = ctx.arg(1)
    if secret_type == "generic":
        plain = {**_file_entries(ctx, ctx.flag_all("from-file")), **_literals(ctx)}
        secret_kind = ctx.flag("type", default="Opaque")
    elif secret_type == "tls":
        cert = require(ctx.flag("cert"), "--cert is required")
        key = require(ctx.flag("key"), "--key is required")
        plain = _file_entries(ctx, [f"tls.crt={cert}", f"tls.key={key}"])
        secret_kind = "kubernetes.io/tls"
    elif secret_type == "docker-registry":
        server = ctx.flag("docker-server", default="https://index.docker.io/v1/")
        username = require(ctx.flag("docker-username"), "--docker-username is required")
        password = require(ctx.flag("docker-password"), "--docker-password is required")
        auth = _b64(f"{username}:{password}")
        plain = {
            ".dockerconfigjson": (
                f'{{"auths":{{"{server}":{{"username":"{username}","password":"{password}","auth":"{auth}"}}}}}}'
            )
        }
        secret_kind = "kubernetes.io/dockerconfigjson"
    else:
        raise UsageError("must specify one of generic, tls or docker-registry", USAGES["secret"])
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _namespaced_meta(ctx, name),
        "type": secret_kind,
        "data": {k: _b64(v) for k, v in plain.items()},
    }


@generator("namespace")
def _namespace(ctx: Invocation, name: str) -> dict:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": metadata(name, None), "spec": {}}


@generator("serviceaccount")
def _service_account(ctx: Invocation, name: str) -> dict:
    return {"apiVersion": "v1", "kind": "ServiceAccount", "metadata": _namespaced_meta(ctx, name)}


@generator("quota")
def _quota(ctx: Invocation, name: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ResourceQuota",
        "metadata": _namespaced_meta(ctx, name),
        "spec": {"hard": parse_pairs(ctx.flag("hard") or "")},
        "status": {},
    }


@generator("priorityclass")
def _priority_class(ctx: Invocation, name: str) -> dict:
    value = parse_int(ctx.flag("value", default="0"), "value")
    return {
        "apiVersion": "scheduling.k8s.io/v1",
        "kind": "PriorityClass",
        "metadata": metadata(name, None),
        "value": value,
        "globalDefault": ctx.has("global-default"),
        "description": ctx.flag("description", default=""),
        "preemptionPolicy": ctx.flag("preemption-policy", default="PreemptLowerPriority"),
    }


# === RBAC ===


def _role_rules(ctx: Invocation) -> list[dict]:
    verbs = _csv(ctx.flag_all("verb"))
    resources = _csv(ctx.flag_all("resource"))
    if not verbs:
        raise UsageError("at least one verb must be specified", USAGES["role"])
    if not resources:
        raise UsageError("at least one resource must be specified", USAGES["role"])
    return make_rules(verbs, resources, _csv(ctx.flag_all("resource-name")) or None)


@generator("role")
def _role(ctx: Invocation, name: str) -> dict:
    role = make_role(name, ctx.namespace, _role_rules(ctx))
    role["metadata"] = _namespaced_meta(ctx, name)
    return role


@generator("clusterrole")
def _cluster_role(ctx: Invocation, name: str) -> dict:
    role = make_cluster_role(name, _role_rules(ctx))
    role["metadata"] = metadata(name, None)
    return role


def _subjects(ctx: Invocation) -> list[dict]:
    subjects = [
        {"apiGroup": "rbac.authorization.k8s.io", "kind": "User", "name": user}
        for user in _csv(ctx.flag_all("user"))
    ]
    subjects += [
        {"apiGroup": "rbac.authorization.k8s.io", "kind": "Group", "name": group}
        for group in _csv(ctx.flag_all("group"))
    ]
    for account in _csv(ctx.flag_all("serviceaccount")):
        namespace, sep, sa_name = account.partition(":")
        if not sep or not sa_name:
            raise UsageError(f"serviceaccount must be <namespace>:<name>, got {account}")
        subjects.append({"kind": "ServiceAccount", "name": sa_name, "namespace": namespace})
    return subjects


@generator("rolebinding")
def _role_binding(ctx: Invocation, name: str) -> dict:
    role = ctx.flag("role")
    cluster_role = ctx.flag("clusterrole")
    if bool(role) == bool(cluster_role):
        raise UsageError("exactly one of clusterrole or role must be specified", USAGES["rolebinding"])
    binding = make_role_binding(
        name,
        ctx.namespace,
        "Role" if role else "ClusterRole",
        role or cluster_role,
        _subjects(ctx),
    )
    binding["metadata"] = _namespaced_meta(ctx, name)
    return binding


@generator("clusterrolebinding")
def _cluster_role_binding(ctx: Invocation, name: str) -> dict:
    cluster_role = require(ctx.flag("clusterrole"), "clusterrole must be specified")
    binding = make_cluster_role_binding(name, cluster_role, _subjects(ctx))
    binding["metadata"] = metadata(name, None)
    return binding


# === Tokens ===


def _token(ctx: Invocation) -> CommandResult:
    name = require(ctx.arg(1), "serviceaccount name is required", "kubectl create token SERVICE_ACCOUNT_NAME [options]")
    if ctx.state.find(kind_for("ServiceAccount"), name, ctx.namespace) is None:
        raise NotFound("serviceaccounts", name)
    header = _b64('{"alg":"RS256","kid":"kubequest"}').rstrip("=")
    claims = _b64(f'{{"sub":"system:serviceaccount:{ctx.namespace}:{name}"}}').rstrip("=")
    signature = generate_uid().replace("-", "")
    return result(f"{header}.{claims}.{signature}")
