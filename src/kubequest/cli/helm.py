"""
helm interpreter.

Charts are not fetched. `install` synthesizes the workload a recognized
chart would create (Argo CD gets its component set; any other chart gets
one pod and one service), and the release is recorded on HostState so
list/status/upgrade/rollback/history/uninstall see it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone

from kubequest.cli import CommandContext, CommandResult
from kubequest.core import config
from kubequest.core.cluster import ClusterState, kind_for, namespace_of
from kubequest.core.host import HelmRelease, HostState
from kubequest.core.objects import new_pod, new_service, random_suffix
from kubequest.core.outcome import Text
from kubequest.core.render import to_yaml

COMMANDS = ["helm"]

HELM_VERSION = 'version.BuildInfo{Version:"v3.13.0", GitCommit:"825e86f6a7a38cef1112bfa606e4127a706749b1", GitTreeState:"clean", GoVersion:"go1.21.0"}'


@dataclass(frozen=True)
class Chart:
    version: str
    app_version: str
    description: str


# repo -> chart -> metadata
CATALOG = {
    "argo": {
        "argo-cd": Chart(
            "7.7.3",
            "2.13.2",
            "A Helm chart for Argo CD, a declarative, GitOps continuous delivery tool for Kubernetes.",
        ),
    },
    "bitnami": {
        "nginx": Chart("15.0.0", "1.25.0", "NGINX Open Source is a web server."),
        "mariadb": Chart("14.0.0", "11.1.2", "MariaDB is a fast, reliable, and scalable SQL database."),
        "wordpress": Chart("18.0.0", "6.4.0", "WordPress is a popular blogging tool."),
    },
}

ARGO_COMPONENTS = (
    "server",
    "repo-server",
    "application-controller",
    "applicationset-controller",
    "notifications-controller",
    "redis",
)

INSTANCE_LABEL = "app.kubernetes.io/instance"

VALUE_FLAGS = ("namespace", "n", "version", "set", "values", "f", "output", "o", "revision")


def _usage(command: str, args: str, count: str) -> str:
    return f'Error: "helm {command}" requires {count}\n\nUsage:\n  helm {command} {args} [flags]'


def _parse(tokens: list[str]) -> tuple[list[str], dict[str, list[str]]]:
    args: list[str] = []
    flags: dict[str, list[str]] = {}
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token.startswith("-") and len(token) > 1:
            name = token.lstrip("-")
            if "=" in name:
                name, value = name.split("=", 1)
            elif name in VALUE_FLAGS and i + 1 < len(tokens):
                value = tokens[i + 1]
                i += 1
            else:
                value = "true"
            flags.setdefault(name, []).append(value)
        else:
            args.append(token)
        i += 1
    return args, flags


class Helm:
    """One helm invocation: parsed flags plus the states it may update."""

    def __init__(self, ctx: CommandContext):
        self.args, self.flags = _parse(ctx.tokens[1:])
        self.cluster = ctx.cluster
        self.host = ctx.host

    def flag(self, *names: str, default: str | None = None) -> str | None:
        for name in names:
            if name in self.flags:
                return self.flags[name][-1]
        return default

    def arg(self, index: int) -> str | None:
        return self.args[index] if index < len(self.args) else None

    @property
    def namespace(self) -> str:
        return self.flag("namespace", "n") or "default"

    def set_values(self) -> dict[str, str]:
        values = {}
        for term in self.flags.get("set", ()):
            for pair in term.split(","):
                key, _, value = pair.partition("=")
                values[key] = value
        return values


def execute(ctx: CommandContext) -> CommandResult:
    helm = Helm(ctx)
    action = helm.arg(0)
    if action is None or action == "help" or "help" in helm.flags or "h" in helm.flags:
        return CommandResult(Text(HELP))
    handler = _ACTIONS.get(action)
    if handler is None:
        return CommandResult(Text(f'Error: unknown command "{action}" for "helm"'))
    return handler(helm)


def _text(output: str, cluster: ClusterState | None = None, host: HostState | None = None) -> CommandResult:
    return CommandResult(Text(output), cluster=cluster, host=host)


def _stamp() -> str:
    return datetime.now(timezone.utc).strftime("%a %b %d %H:%M:%S %Y")


# === Charts ===


def find_chart(host: HostState, ref: str) -> tuple[str, Chart] | str:
    """(chart name, metadata) for `repo/chart`, or an error message."""
    if ref.startswith((".", "/")):
        name = ref.rstrip("/").rsplit("/", 1)[-1]
        return name, Chart("0.1.0", "1.0.0", f"A Helm chart for {name}")
    repo, sep, name = ref.partition("/")
    if not sep:
        return f'Error: repo {ref} not found'
    if repo not in host.helm_repos:
        return f"Error: repo {repo} not found"
    chart = CATALOG.get(repo, {}).get(name)
    if chart is None:
        return f'Error: chart "{name}" matching  not found in {repo} index. (try \'helm repo update\'): no chart name found'
    return name, chart


def _image(chart_name: str, values: dict[str, str]) -> str:
    repository = values.get("image.repository", chart_name)
    return f"{repository}:{values.get('image.tag', 'latest')}"


def _replicas(values: dict[str, str]) -> int:
    try:
        return max(0, int(values.get("replicaCount", "1")))
    except ValueError:
        return 1


def manifests(release: str, chart_name: str, namespace: str, values: dict[str, str]) -> list[tuple[str, dict]]:
    """(template source path, object) pairs the chart renders."""
    labels = {
        "app.kubernetes.io/name": chart_name,
        INSTANCE_LABEL: release,
        "app.kubernetes.io/managed-by": "Helm",
    }
    if chart_name in ("argo-cd", "argocd"):
        docs = []
        if values.get("crds.install") != "false":
            docs.append(
                (
                    "argo-cd/crds/application.yaml",
                    {
                        "apiVersion": "apiextensions.k8s.io/v1",
                        "kind": "CustomResourceDefinition",
                        "metadata": {"name": "applications.argoproj.io"},
                        "spec": {
                            "group": "argoproj.io",
                            "names": {
                                "kind": "Application",
                                "listKind": "ApplicationList",
                                "plural": "applications",
                                "shortNames": ["app"],
                                "singular": "application",
                            },
                        },
                    },
                )
            )
        docs.append(
            (
                "argo-cd/templates/argocd-configs/argocd-cm.yaml",
                {
                    "apiVersion": "v1",
                    "kind": "ConfigMap",
                    "metadata": {
                        "name": "argocd-cm",
                        "namespace": namespace,
                        "labels": {**labels, "app.kubernetes.io/part-of": "argocd"},
                    },
                    "data": {},
                },
            )
        )
        for component in ARGO_COMPONENTS:
            docs.append(
                (
                    f"argo-cd/templates/argocd-{component}/deployment.yaml",
                    _deployment(
                        f"{release}-{component}",
                        namespace,
                        {**labels, "app.kubernetes.io/component": component},
                        component,
                        "quay.io/argoproj/argocd:v2.13.2",
                        1,
                    ),
                )
            )
        docs.append(
            (
                "argo-cd/templates/argocd-server/service.yaml",
                _service(f"{release}-server", namespace, labels, {INSTANCE_LABEL: release, "app.kubernetes.io/component": "server"}, 8080, values),
            )
        )
        return docs

    return [
        (
            f"{chart_name}/templates/deployment.yaml",
            _deployment(release, namespace, labels, chart_name, _image(chart_name, values), _replicas(values)),
        ),
        (
            f"{chart_name}/templates/service.yaml",
            _service(release, namespace, labels, {INSTANCE_LABEL: release}, 80, values),
        ),
    ]


def _deployment(name: str, namespace: str, labels: dict, container: str, image: str, replicas: int) -> dict:
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": name, "namespace": namespace, "labels": dict(labels)},
        "spec": {
            "replicas": replicas,
            "selector": {"matchLabels": {k: v for k, v in labels.items() if k != "app.kubernetes.io/managed-by"}},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": {"containers": [{"name": container, "image": image}]},
            },
        },
    }


def _service(name: str, namespace: str, labels: dict, selector: dict, target_port: int, values: dict[str, str]) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace, "labels": dict(labels)},
        "spec": {
            "type": values.get("service.type", "ClusterIP"),
            "ports": [{"port": 80, "targetPort": target_port, "protocol": "TCP"}],
            "selector": dict(selector),
        },
    }


def _install_objects(state: ClusterState, docs: list[tuple[str, dict]]) -> ClusterState:
    """Create the pods and services a rendered chart describes."""
    pod_kind = kind_for("Pod")
    svc_kind = kind_for("Service")
    for _, doc in docs:
        if doc["kind"] == "Deployment":
            template = doc["spec"]["template"]
            for _ in range(doc["spec"]["replicas"]):
                pod = new_pod(
                    f"{doc['metadata']['name']}-{random_suffix(10)}"[:63].rstrip("-"),
                    doc["metadata"]["namespace"],
                    dict(template["metadata"]["labels"]),
                    dict(template["spec"]),
                    state,
                )
                state = state.with_added(pod_kind, pod)
        elif doc["kind"] == "Service":
            spec = doc["spec"]
            service = new_service(
                doc["metadata"]["name"],
                doc["metadata"]["namespace"],
                spec["selector"],
                spec["ports"],
                state,
                spec["type"],
                labels=doc["metadata"]["labels"],
            )
            state = state.with_added(svc_kind, service)
    return state


def _remove_objects(state: ClusterState, release: str, namespace: str) -> ClusterState:
    def owned(obj: dict) -> bool:
        return namespace_of(obj) == namespace and obj["metadata"].get("labels", {}).get(INSTANCE_LABEL) == release

    state = state.with_pods(p for p in state.pods if not owned(p))
    return state.without(kind_for("Service"), owned)


def _release_info(release: HelmRelease, header: str = "") -> str:
    lines = [header] if header else []
    lines += [
        f"NAME: {release.name}",
        f"LAST DEPLOYED: {release.updated}",
        f"NAMESPACE: {release.namespace}",
        f"STATUS: {release.status}",
        f"REVISION: {release.revision}",
        "TEST SUITE: None",
    ]
    return "\n".join(lines)


# === Actions ===


def _install(helm: Helm) -> CommandResult:
    name, ref = helm.arg(1), helm.arg(2)
    if not name or not ref:
        return _text(_usage("install", "[NAME] [CHART]", "at least 2 arguments"))
    namespace = helm.namespace
    if helm.host.release(name, namespace) is not None:
        return _text("Error: INSTALLATION FAILED: cannot re-use a name that is still in use")
    found = find_chart(helm.host, ref)
    if isinstance(found, str):
        return _text(found.replace("Error: ", "Error: INSTALLATION FAILED: ", 1))
    chart_name, chart = found

    state = helm.cluster
    if namespace not in state.namespaces:
        if "create-namespace" not in helm.flags:
            return _text(
                f'Error: INSTALLATION FAILED: create: failed to create: namespaces "{namespace}" not found'
            )
        state = state.with_namespace(namespace)

    version = helm.flag("version") or chart.version
    docs = manifests(name, chart_name, namespace, helm.set_values())
    if "dry-run" not in helm.flags:
        state = _install_objects(state, docs)
    release = HelmRelease(name, namespace, f"{chart_name}-{version}", chart.app_version, updated=_stamp())
    config.log("info", "helm_install", release=name, chart=ref, namespace=namespace)
    output = _release_info(release) + (
        f"\nNOTES:\nChart {ref} (version {version}) has been installed.\n\n"
        "Get the application URL by running these commands:\n"
        f"  kubectl --namespace {namespace} port-forward svc/{docs[-1][1]['metadata']['name']} 8080:80"
    )
    if "dry-run" in helm.flags:
        return _text(output)
    return _text(output, state, helm.host.with_release(release))


def _template(helm: Helm) -> CommandResult:
    name, ref = helm.arg(1), helm.arg(2)
    if not name or not ref:
        return _text(_usage("template", "[NAME] [CHART]", "at least 2 arguments"))
    found = find_chart(helm.host, ref)
    if isinstance(found, str):
        return _text(found)
    chart_name, _ = found
    docs = manifests(name, chart_name, helm.namespace, helm.set_values())
    return _text("\n".join(f"---\n# Source: {source}\n{to_yaml(doc)}" for source, doc in docs))


def _uninstall(helm: Helm) -> CommandResult:
    names = helm.args[1:]
    if not names:
        return _text(_usage("uninstall", "RELEASE_NAME [...]", "at least 1 argument"))
    namespace = helm.namespace
    state, host = helm.cluster, helm.host
    lines = []
    for name in names:
        if host.release(name, namespace) is None:
            return _text(f"Error: uninstall: Release not loaded: {name}: release: not found")
        state = _remove_objects(state, name, namespace)
        host = host.without_release(name, namespace)
        config.log("info", "helm_uninstall", release=name, namespace=namespace)
        lines.append(f'release "{name}" uninstalled')
    return _text("\n".join(lines), state, host)


def _upgrade(helm: Helm) -> CommandResult:
    name, ref = helm.arg(1), helm.arg(2)
    if not name or not ref:
        return _text(_usage("upgrade", "[RELEASE] [CHART]", "at least 2 arguments"))
    namespace = helm.namespace
    current = helm.host.release(name, namespace)
    if current is None:
        if "install" in helm.flags or "i" in helm.flags:
            result = _install(helm)
            if isinstance(result.output, Text) and result.output.text.startswith("NAME:"):
                return replace(result, output=Text(f'Release "{name}" does not exist. Installing it now.\n{result.output.text}'))
            return result
        return _text(f'Error: UPGRADE FAILED: "{name}" has no deployed releases')
    found = find_chart(helm.host, ref)
    if isinstance(found, str):
        return _text(found.replace("Error: ", "Error: UPGRADE FAILED: ", 1))
    chart_name, chart = found
    version = helm.flag("version") or chart.version

    state = _remove_objects(helm.cluster, name, namespace)
    state = _install_objects(state, manifests(name, chart_name, namespace, helm.set_values()))
    release = replace(
        current,
        chart=f"{chart_name}-{version}",
        app_version=chart.app_version,
        revision=current.revision + 1,
        updated=_stamp(),
    )
    config.log("info", "helm_upgrade", release=name, revision=release.revision)
    output = f'Release "{name}" has been upgraded. Happy Helming!\n' + _release_info(release)
    return _text(output, state, helm.host.with_release(release))


def _rollback(helm: Helm) -> CommandResult:
    name = helm.arg(1)
    if not name:
        return _text(_usage("rollback", "<RELEASE> [REVISION]", "at least 1 argument"))
    current = helm.host.release(name, helm.namespace)
    if current is None:
        return _text("Error: release: not found")
    target = helm.arg(2)
    if target is not None and (not target.isdigit() or not 0 < int(target) <= current.revision):
        return _text(f'Error: release has no {target} version')
    release = replace(current, revision=current.revision + 1, updated=_stamp())
    config.log("info", "helm_rollback", release=name, to=target)
    return _text("Rollback was a success! Happy Helming!", host=helm.host.with_release(release))


def _status(helm: Helm) -> CommandResult:
    name = helm.arg(1)
    if not name:
        return _text(_usage("status", "RELEASE_NAME", "1 argument"))
    release = helm.host.release(name, helm.namespace)
    if release is None:
        return _text("Error: release: not found")
    return _text(_release_info(release))


def _history(helm: Helm) -> CommandResult:
    name = helm.arg(1)
    if not name:
        return _text(_usage("history", "RELEASE_NAME", "1 argument"))
    release = helm.host.release(name, helm.namespace)
    if release is None:
        return _text("Error: release: not found")
    rows = [["REVISION", "UPDATED", "STATUS", "CHART", "APP VERSION", "DESCRIPTION"]]
    for revision in range(1, release.revision + 1):
        latest = revision == release.revision
        rows.append(
            [
                str(revision),
                release.updated,
                "deployed" if latest else "superseded",
                release.chart,
                release.app_version,
                "Install complete" if revision == 1 else "Upgrade complete",
            ]
        )
    return _text(_columns(rows))


def _columns(rows: list[list[str]]) -> str:
    widths = [max(len(r[i]) for r in rows) for i in range(len(rows[0]))]
    return "\n".join("\t".join(c.ljust(w) for c, w in zip(r, widths)).rstrip() for r in rows)


def _list(helm: Helm) -> CommandResult:
    everywhere = "all-namespaces" in helm.flags or "A" in helm.flags
    releases = [r for r in helm.host.helm_releases if everywhere or r.namespace == helm.namespace]
    if "short" in helm.flags or "q" in helm.flags:
        return _text("\n".join(r.name for r in releases))
    rows = [["NAME", "NAMESPACE", "REVISION", "UPDATED", "STATUS", "CHART", "APP VERSION"]]
    rows += [
        [r.name, r.namespace, str(r.revision), r.updated, r.status, r.chart, r.app_version]
        for r in releases
    ]
    return _text(_columns(rows))


def _repo(helm: Helm) -> CommandResult:
    sub = helm.arg(1)
    host = helm.host
    if sub == "add":
        name, url = helm.arg(2), helm.arg(3)
        if not name or not url:
            return _text(_usage("repo add", "[NAME] [URL]", "2 arguments"))
        if host.helm_repos.get(name) == url:
            return _text(f'"{name}" already exists with the same configuration, skipping')
        config.log("info", "helm_repo_add", repo=name, url=url)
        return _text(f'"{name}" has been added to your repositories', host=host.with_repo(name, url))
    if sub in ("remove", "rm"):
        name = helm.arg(2)
        if not name:
            return _text(_usage("repo remove", "[REPO1 [REPO2 ...]]", "at least 1 argument"))
        if name not in host.helm_repos:
            return _text(f'Error: no repo named "{name}" found')
        return _text(f'"{name}" has been removed from your repositories', host=host.without_repo(name))
    if sub == "list":
        if not host.helm_repos:
            return _text("Error: no repositories to show")
        rows = [["NAME", "URL"]] + [[name, url] for name, url in host.helm_repos.items()]
        return _text(_columns(rows))
    if sub == "update":
        lines = ["Hang tight while we grab the latest from your chart repositories..."]
        lines += [f'...Successfully got an update from the "{name}" chart repository' for name in host.helm_repos]
        lines.append("Update Complete. ⎈Happy Helming!⎈")
        return _text("\n".join(lines))
    return _text(f'Error: unknown command "{sub}" for "helm repo"')


def _search(helm: Helm) -> CommandResult:
    sub = helm.arg(1)
    if sub not in ("repo", "hub"):
        return _text("Error: search requires a subcommand: hub or repo")
    query = helm.arg(2) or ""
    rows = [["NAME", "CHART VERSION", "APP VERSION", "DESCRIPTION"]]
    for repo, charts in CATALOG.items():
        if sub == "repo" and repo not in helm.host.helm_repos:
            continue
        for chart_name, chart in charts.items():
            full = f"{repo}/{chart_name}"
            if query in full:
                rows.append([full, chart.version, chart.app_version, chart.description])
    if len(rows) == 1:
        return _text("No results found")
    return _text(_columns(rows))


def _version(helm: Helm) -> CommandResult:
    if "short" in helm.flags:
        return _text("v3.13.0+g825e86f")
    return _text(HELM_VERSION)


_ACTIONS = {
    "install": _install,
    "template": _template,
    "uninstall": _uninstall,
    "delete": _uninstall,
    "upgrade": _upgrade,
    "rollback": _rollback,
    "status": _status,
    "history": _history,
    "list": _list,
    "ls": _list,
    "repo": _repo,
    "search": _search,
    "version": _version,
}

HELP = """The Kubernetes package manager

Common actions for Helm:

- helm search:    search for charts
- helm install:   upload the chart to Kubernetes
- helm list:      list releases of charts

Usage:
  helm [command]

Available Commands:
  history     fetch release history
  install     install a chart
  list        list releases
  repo        add, list, remove, update, and index chart repositories
  rollback    roll back a release to a previous revision
  search      search for a keyword in charts
  status      display the status of the named release
  template    locally render templates
  uninstall   uninstall a release
  upgrade     upgrade a release
  version     print the client version information

Use "helm [command] --help" for more information about a command."""
