"""Tests for applying saved `kubectl edit` buffers."""

from __future__ import annotations

import pytest

from kubequest.core.cluster import kind_for, name_of
from kubequest.core.errors import NotFound
from kubequest.core.manifest import apply_manifest
from kubequest.core.patch import CANCELLED, apply_edit
from kubequest.core.render import edit_yaml

from conftest import DEPLOYMENT, pods_of

HPA = """\
apiVersion: autoscaling/v2
kind: HorizontalPodAutoscaler
metadata:
  name: web
spec:
  scaleTargetRef:
    apiVersion: apps/v1
    kind: Deployment
    name: web
  minReplicas: 2
  maxReplicas: 10
"""


@pytest.fixture
def web(cluster):
    _, state = apply_manifest(DEPLOYMENT, cluster)
    return state


def _buffer(state, kind: str, name: str) -> str:
    return edit_yaml(state.find(kind_for(kind), name))


class TestDeployment:
    def test_unchanged_buffer_cancels(self, web):
        output, state = apply_edit("Deployment", "web", "default", _buffer(web, "Deployment", "web"), web)
        assert output == CANCELLED
        assert state is web

    def test_empty_resources_survive_unchanged_buffer(self, kubectl):
        _, state = kubectl("kubectl create deployment api --image=nginx")
        live = state.find(kind_for("Deployment"), "api")
        assert live["spec"]["template"]["spec"]["containers"][0].get("resources") == {}
        before = [name_of(p) for p in pods_of(state, "api")]
        output, after = apply_edit("Deployment", "api", "default", _buffer(state, "Deployment", "api"), state)
        assert output == CANCELLED
        assert [name_of(p) for p in pods_of(after, "api")] == before

    def test_removed_resources_are_dropped(self, web):
        text = _buffer(web, "Deployment", "web").replace("ports:", "resources:\n          limits:\n            cpu: 500m\n        ports:", 1)
        _, state = apply_edit("Deployment", "web", "default", text, web)
        container = state.find(kind_for("Deployment"), "web")["spec"]["template"]["spec"]["containers"][0]
        assert container["resources"] == {"limits": {"cpu": "500m"}}
        text = _buffer(state, "Deployment", "web").replace("        resources:\n          limits:\n            cpu: 500m\n", "")
        _, state = apply_edit("Deployment", "web", "default", text, state)
        container = state.find(kind_for("Deployment"), "web")["spec"]["template"]["spec"]["containers"][0]
        assert "resources" not in container

    def test_replicas_scale_only(self, web):
        before = {name_of(p) for p in pods_of(web, "web")}
        text = _buffer(web, "Deployment", "web").replace("replicas: 3", "replicas: 4")
        output, state = apply_edit("Deployment", "web", "default", text, web)
        assert output == "deployment.apps/web edited"
        pods = pods_of(state, "web")
        assert len(pods) == 4
        assert before <= {name_of(p) for p in pods}

    def test_image_rolls_pods(self, web):
        text = _buffer(web, "Deployment", "web").replace("nginx:1.25", "nginx:1.27")
        _, state = apply_edit("Deployment", "web", "default", text, web)
        pods = pods_of(state, "web")
        assert len(pods) == 3
        assert {p["spec"]["containers"][0]["image"] for p in pods} == {"nginx:1.27"}
        deployment = state.find(kind_for("Deployment"), "web")
        assert deployment["metadata"]["generation"] == 2

    def test_env_added(self, web):
        text = _buffer(web, "Deployment", "web") + '\n        env:\n        - name: DB_HOST\n          value: ""'
        _, state = apply_edit("Deployment", "web", "default", text, web)
        assert {p["status"]["phase"] for p in pods_of(state, "web")} == {"CrashLoopBackOff"}

    def test_empty_buffer_cancels(self, web):
        output, _ = apply_edit("Deployment", "web", "default", "   \n", web)
        assert output == CANCELLED

    def test_missing_object(self, web):
        with pytest.raises(NotFound) as exc:
            apply_edit("Deployment", "nope", "default", "kind: Deployment", web)
        assert str(exc.value) == 'Error from server (NotFound): deployments.apps "nope" not found'


class TestOtherKinds:
    def test_hpa_bounds(self, web):
        _, state = apply_manifest(HPA, web)
        text = _buffer(state, "HorizontalPodAutoscaler", "web").replace("maxReplicas: 10", "maxReplicas: 5")
        output, state = apply_edit("HorizontalPodAutoscaler", "web", "default", text, state)
        assert output == "horizontalpodautoscaler.autoscaling/web edited"
        hpa = state.find(kind_for("HorizontalPodAutoscaler"), "web")
        assert (hpa["spec"]["minReplicas"], hpa["spec"]["maxReplicas"]) == (2, 5)

    def test_hpa_stabilization_window(self, web):
        _, state = apply_manifest(HPA, web)
        text = _buffer(state, "HorizontalPodAutoscaler", "web")
        text += "\n  behavior:\n    scaleDown:\n      stabilizationWindowSeconds: 60"
        _, state = apply_edit("HorizontalPodAutoscaler", "web", "default", text, state)
        hpa = state.find(kind_for("HorizontalPodAutoscaler"), "web")
        assert hpa["spec"]["behavior"]["scaleDown"]["stabilizationWindowSeconds"] == 60

    def test_config_map_data_replaced(self, cluster):
        _, state = apply_manifest("kind: ConfigMap\nmetadata:\n  name: cfg\ndata:\n  a: '1'\n  b: two\n", cluster)
        unchanged, _ = apply_edit("ConfigMap", "cfg", "default", _buffer(state, "ConfigMap", "cfg"), state)
        assert unchanged == CANCELLED
        text = _buffer(state, "ConfigMap", "cfg").replace("b: two", "c: three")
        output, state = apply_edit("ConfigMap", "cfg", "default", text, state)
        assert output == "configmap/cfg edited"
        assert state.find(kind_for("ConfigMap"), "cfg")["data"] == {"a": "1", "c": "three"}

    def test_service_type_change(self, cluster):
        text = _buffer(cluster, "Service", "kubernetes")
        assert "type: ClusterIP" in text
        output, state = apply_edit("Service", "kubernetes", "default", text.replace("ClusterIP", "NodePort"), cluster)
        assert output == "service/kubernetes edited"
        port = state.find(kind_for("Service"), "kubernetes")["spec"]["ports"][0]
        assert 30000 <= port["nodePort"] <= 32767

    def test_pod_image(self, cluster):
        _, state = apply_manifest("kind: Pod\nmetadata:\n  name: p\nspec:\n  containers:\n  - name: c\n    image: nginx\n", cluster)
        text = _buffer(state, "Pod", "p").replace("image: nginx", "image: invalid-image")
        _, state = apply_edit("Pod", "p", "default", text, state)
        assert state.find(kind_for("Pod"), "p")["status"]["phase"] == "ImagePullBackOff"

    def test_unsupported_kind_cancels(self, cluster):
        output, state = apply_edit("StorageClass", "standard", "default", "kind: StorageClass", cluster)
        assert output == CANCELLED
        assert state is cluster
