"""Tests for the helm interpreter."""

from __future__ import annotations

import pytest

from kubequest.cli.helm import find_chart, manifests
from kubequest.core.host import HostState


@pytest.fixture
def helm(interpret, cluster, host):
    """Run a helm line; returns (output, cluster, host)."""

    def _helm(line: str, state=None, hosts=None):
        state = state or cluster
        hosts = hosts or host
        result = interpret(line, state=state, hosts=hosts)
        return str(result.output), result.cluster or state, result.host or hosts

    return _helm


def _release_pods(state, release: str) -> list[dict]:
    return [p for p in state.pods if p["metadata"]["labels"].get("app.kubernetes.io/instance") == release]


class TestInstall:
    def test_generic_chart(self, helm, kubectl):
        output, state, host = helm("helm install myrelease bitnami/nginx")
        assert output.startswith("NAME: myrelease\n")
        assert "STATUS: deployed" in output
        pods = _release_pods(state, "myrelease")
        assert [p["spec"]["containers"][0]["image"] for p in pods] == ["nginx:latest"]
        assert host.release("myrelease", "default").chart == "nginx-15.0.0"

        listing, _ = kubectl("kubectl get pods", state)
        assert "myrelease-" in listing
        assert "Running" in listing

    def test_values_override(self, helm):
        _, state, _ = helm("helm install web bitnami/nginx --set image.tag=1.25,replicaCount=2 --set service.type=NodePort")
        pods = _release_pods(state, "web")
        assert len(pods) == 2
        assert {p["spec"]["containers"][0]["image"] for p in pods} == {"nginx:1.25"}
        service = next(s for s in state.services if s["metadata"]["name"] == "web")
        assert service["spec"]["type"] == "NodePort"

    def test_argo_components(self, helm):
        _, state, host = helm("helm repo add argo https://argoproj.github.io/argo-helm")
        output, state, _ = helm("helm install argocd argo/argo-cd -n argocd --create-namespace", state, host)
        assert "NAMESPACE: argocd" in output
        assert "argocd" in state.namespaces
        assert len(_release_pods(state, "argocd")) == 6
        assert any(s["metadata"]["name"] == "argocd-server" for s in state.services)

    def test_missing_namespace(self, helm):
        output, state, _ = helm("helm install web bitnami/nginx -n apps")
        assert output == 'Error: INSTALLATION FAILED: create: failed to create: namespaces "apps" not found'
        assert not state.pods

    def test_unknown_repo(self, helm):
        output, _, _ = helm("helm install web nosuch/nginx")
        assert output == "Error: INSTALLATION FAILED: repo nosuch not found"

    def test_name_in_use(self, helm):
        _, state, host = helm("helm install web bitnami/nginx")
        output, _, _ = helm("helm install web bitnami/nginx", state, host)
        assert output == "Error: INSTALLATION FAILED: cannot re-use a name that is still in use"

    def test_dry_run(self, interpret):
        result = interpret("helm install web bitnami/nginx --dry-run")
        assert str(result.output).startswith("NAME: web")
        assert result.cluster is None
        assert result.host is None

    def test_requires_arguments(self, helm):
        output, _, _ = helm("helm install web")
        assert output.startswith('Error: "helm install" requires at least 2 arguments')


class TestRelease:
    @pytest.fixture
    def installed(self, helm):
        _, state, host = helm("helm install web bitnami/nginx")
        return state, host

    def test_uninstall_removes_workload(self, helm, installed):
        output, state, host = helm("helm uninstall web", *installed)
        assert output == 'release "web" uninstalled'
        assert not _release_pods(state, "web")
        assert not any(s["metadata"]["name"] == "web" for s in state.services)
        assert host.release("web", "default") is None

    def test_uninstall_unknown(self, helm):
        output, _, _ = helm("helm uninstall ghost")
        assert output == "Error: uninstall: Release not loaded: ghost: release: not found"

    def test_upgrade_bumps_revision(self, helm, installed):
        output, state, host = helm("helm upgrade web bitnami/nginx --set image.tag=1.27", *installed)
        assert output.startswith('Release "web" has been upgraded. Happy Helming!')
        assert host.release("web", "default").revision == 2
        assert {p["spec"]["containers"][0]["image"] for p in _release_pods(state, "web")} == {"nginx:1.27"}

    def test_upgrade_install(self, helm):
        output, _, host = helm("helm upgrade --install web bitnami/nginx")
        assert output.startswith('Release "web" does not exist. Installing it now.\nNAME: web')
        assert host.release("web", "default") is not None

    def test_upgrade_without_release(self, helm):
        output, _, _ = helm("helm upgrade web bitnami/nginx")
        assert output == 'Error: UPGRADE FAILED: "web" has no deployed releases'

    def test_rollback(self, helm, installed):
        _, _, host = helm("helm upgrade web bitnami/nginx", *installed)
        output, _, host = helm("helm rollback web 1", installed[0], host)
        assert output == "Rollback was a success! Happy Helming!"
        assert host.release("web", "default").revision == 3
        output, _, _ = helm("helm rollback web 9", installed[0], host)
        assert output == "Error: release has no 9 version"

    def test_history(self, helm, installed):
        _, _, host = helm("helm upgrade web bitnami/nginx", *installed)
        output, _, _ = helm("helm history web", installed[0], host)
        lines = output.splitlines()
        assert lines[0].startswith("REVISION")
        assert "superseded" in lines[1]
        assert "deployed" in lines[2]

    def test_list(self, helm, installed):
        output, _, _ = helm("helm list", *installed)
        lines = output.splitlines()
        assert lines[0].split("\t")[0].strip() == "NAME"
        assert lines[1].startswith("web")
        output, _, _ = helm("helm ls -q", *installed)
        assert output == "web"

    def test_status(self, helm, installed):
        output, _, _ = helm("helm status web", *installed)
        assert "REVISION: 1" in output


class TestRepos:
    def test_add_and_list(self, helm):
        output, _, host = helm("helm repo add argo https://argoproj.github.io/argo-helm")
        assert output == '"argo" has been added to your repositories'
        output, _, _ = helm("helm repo add argo https://argoproj.github.io/argo-helm", hosts=host)
        assert output == '"argo" already exists with the same configuration, skipping'
        output, _, _ = helm("helm repo list", hosts=host)
        assert "argo" in output

    def test_remove(self, helm):
        output, _, host = helm("helm repo remove bitnami")
        assert output == '"bitnami" has been removed from your repositories'
        assert "bitnami" not in host.helm_repos
        output, _, _ = helm("helm repo remove bitnami", hosts=host)
        assert output == 'Error: no repo named "bitnami" found'

    def test_instances_do_not_share_repos(self, helm):
        _, _, host = helm("helm repo add argo https://argoproj.github.io/argo-helm")
        assert "argo" in host.helm_repos
        assert "argo" not in HostState().helm_repos

    def test_search(self, helm):
        output, _, _ = helm("helm search repo nginx")
        assert "bitnami/nginx" in output
        output, _, _ = helm("helm search repo argo")
        assert output == "No results found"
        output, _, _ = helm("helm search hub argo")
        assert "argo/argo-cd" in output


class TestRendering:
    def test_template(self, helm):
        output, state, _ = helm("helm template web bitnami/nginx")
        assert output.startswith("---\n# Source: nginx/templates/deployment.yaml\n")
        assert "# Source: nginx/templates/service.yaml" in output
        assert "image: nginx:latest" in output
        assert not state.pods

    def test_local_chart(self, host):
        assert find_chart(host, "./charts/api")[0] == "api"

    def test_argo_without_crds(self):
        docs = manifests("argocd", "argo-cd", "argocd", {"crds.install": "false"})
        assert not any(doc["kind"] == "CustomResourceDefinition" for _, doc in docs)


def test_unknown_action(helm):
    output, _, _ = helm("helm frobnicate")
    assert output == 'Error: unknown command "frobnicate" for "helm"'


def test_help(helm):
    output, _, _ = helm("helm --help")
    assert output.startswith("The Kubernetes package manager")
