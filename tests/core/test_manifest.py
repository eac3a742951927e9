"""Tests for the YAML reader and the apply/create/delete engine."""

from __future__ import annotations

import pytest

from kubequest.core.cluster import kind_for, name_of
from kubequest.core.errors import InvalidManifest
from kubequest.core.manifest import (
    apply_manifest,
    create_manifest,
    delete_manifest,
    delete_object,
    parse_scalar,
    read_document,
    split_documents,
)

from conftest import DEPLOYMENT, SERVICE, pods_of


SCALARS = [
    ("42", 42),
    ("-3", -3),
    ("1.5", 1.5),
    ("true", True),
    ("False", False),
    ("null", None),
    ("~", None),
    ('"80"', "80"),
    ("'it''s'", "it's"),
    ("nginx:1.25", "nginx:1.25"),
    ("[a, b]", ["a", "b"]),
    ("[]", []),
    ("{app: web, tier: front}", {"app": "web", "tier": "front"}),
    ("{}", {}),
]


@pytest.mark.parametrize("text,expected", SCALARS)
def test_parse_scalar(text: str, expected):
    assert parse_scalar(text) == expected


class TestReader:
    def test_nested_document(self):
        doc = read_document(DEPLOYMENT)
        assert doc["kind"] == "Deployment"
        assert doc["spec"]["replicas"] == 3
        container = doc["spec"]["template"]["spec"]["containers"][0]
        assert container == {"name": "nginx", "image": "nginx:1.25", "ports": [{"containerPort": 80}]}

    def test_comments_and_quotes(self):
        doc = read_document('kind: ConfigMap  # trailing\nmetadata:\n  name: "cfg"\ndata:\n  url: "http://x#y"\n')
        assert doc["metadata"]["name"] == "cfg"
        assert doc["data"]["url"] == "http://x#y"

    def test_literal_block(self):
        doc = read_document("data:\n  script: |\n    echo one\n    echo two\n  after: x\n")
        assert doc["data"]["script"] == "echo one\necho two\n"
        assert doc["data"]["after"] == "x"

    def test_folded_block_strip(self):
        doc = read_document("text: >-\n  one\n  two\n")
        assert doc["text"] == "one two"

    def test_sequence_at_key_indent(self):
        doc = read_document("args:\n- a\n- b\nnext: 1\n")
        assert doc == {"args": ["a", "b"], "next": 1}

    def test_status_dropped(self):
        doc = read_document("kind: Pod\nmetadata:\n  name: p\nstatus:\n  phase: Running\n")
        assert "status" not in doc

    def test_not_a_mapping(self):
        with pytest.raises(InvalidManifest):
            read_document("- a\n- b\n")

    def test_split_documents(self):
        docs = split_documents("---\nkind: A\n---\n\n---\nkind: B\n...\n")
        assert [d.strip() for d in docs] == ["kind: A", "kind: B"]


class TestApply:
    def test_deployment_created_and_reconciled(self, cluster):
        output, state = apply_manifest(DEPLOYMENT, cluster)
        assert output == "deployment.apps/web created"
        pods = pods_of(state, "web")
        assert len(pods) == 3
        assert all(p["status"]["phase"] == "Running" for p in pods)
        assert len(state.replica_sets) == 1

    def test_reapply_configured(self, cluster):
        _, state = apply_manifest(DEPLOYMENT, cluster)
        output, state = apply_manifest(DEPLOYMENT.replace("replicas: 3", "replicas: 1"), state)
        assert output == "deployment.apps/web configured"
        assert len(pods_of(state, "web")) == 1

    def test_image_change_rolls_pods(self, cluster):
        _, state = apply_manifest(DEPLOYMENT, cluster)
        before = {name_of(p) for p in pods_of(state, "web")}
        _, state = apply_manifest(DEPLOYMENT.replace("nginx:1.25", "nginx:1.26"), state)
        after = pods_of(state, "web")
        assert len(after) == 3
        assert before.isdisjoint(name_of(p) for p in after)
        assert all(p["spec"]["containers"][0]["image"] == "nginx:1.26" for p in after)

    def test_selector_must_match_template(self, cluster):
        odd = DEPLOYMENT.replace("name: web\n", "name: odd\n", 1).replace("      app: web\n  template", "      app: odd\n  template")
        for _ in range(3):
            output, state = apply_manifest(odd, cluster)
            assert output == (
                'The Deployment "odd" is invalid: spec.template.metadata.labels: '
                'Invalid value: map[string]string{"app":"web"}: `selector` does not match template `labels`'
            )
            assert state is cluster
        assert not state.pods

    def test_reapply_cannot_orphan_pods(self, cluster):
        _, state = apply_manifest(DEPLOYMENT, cluster)
        relabelled = DEPLOYMENT.replace("        app: web\n", "        app: other\n")
        output, again = apply_manifest(relabelled, state)
        assert "`selector` does not match template `labels`" in output
        assert again is state
        assert len(state.pods) == 3

    def test_multi_document(self, cluster):
        output, state = apply_manifest(DEPLOYMENT + "---\n" + SERVICE, cluster)
        assert output == "deployment.apps/web created\nservice/web created"
        service = state.find(kind_for("Service"), "web")
        assert service["spec"]["ports"][0]["targetPort"] == 8080

    def test_service_unchanged(self, cluster):
        _, state = apply_manifest(SERVICE, cluster)
        output, again = apply_manifest(SERVICE, state)
        assert output == "service/web unchanged"
        assert again is state

    def test_config_map_always_configured(self, cluster):
        text = "apiVersion: v1\nkind: ConfigMap\nmetadata:\n  name: cfg\ndata:\n  a: '1'\n"
        _, state = apply_manifest(text, cluster)
        output, state = apply_manifest(text, state)
        assert output == "configmap/cfg configured"
        assert state.find(kind_for("ConfigMap"), "cfg")["data"] == {"a": "1"}

    def test_secret_string_data_encoded(self, cluster):
        text = "kind: Secret\nmetadata:\n  name: creds\nstringData:\n  password: hunter2\n"
        _, state = apply_manifest(text, cluster)
        assert state.find(kind_for("Secret"), "creds")["data"]["password"] == "aHVudGVyMg=="

    def test_namespace_created_for_namespaced_object(self, cluster):
        text = "kind: ConfigMap\nmetadata:\n  name: cfg\n  namespace: team-a\n"
        _, state = apply_manifest(text, cluster)
        assert "team-a" in state.namespaces

    def test_pvc_binds_available_volume(self, cluster):
        pv = "kind: PersistentVolume\nmetadata:\n  name: vol\nspec:\n  storageClassName: manual\n"
        pvc = "kind: PersistentVolumeClaim\nmetadata:\n  name: claim\nspec:\n  storageClassName: manual\n"
        _, state = apply_manifest(pv + "---\n" + pvc, cluster)
        volume = state.find(kind_for("PersistentVolume"), "vol")
        assert volume["status"]["phase"] == "Bound"
        assert volume["spec"]["claimRef"]["name"] == "claim"

    def test_bad_image_backs_off(self, cluster):
        _, state = apply_manifest("kind: Pod\nmetadata:\n  name: p\nspec:\n  containers:\n  - name: c\n    image: nonexistent:1\n", cluster)
        assert state.find(kind_for("Pod"), "p")["status"]["phase"] == "ImagePullBackOff"

    def test_missing_name(self, cluster):
        output, state = apply_manifest("kind: Pod\nmetadata: {}\n", cluster)
        assert output == "error: invalid YAML - missing kind or name"
        assert state is cluster

    def test_unknown_kind(self, cluster):
        output, _ = apply_manifest("kind: Widget\nmetadata:\n  name: w\n", cluster)
        assert output == 'error: unknown resource kind "Widget"'

    def test_empty(self, cluster):
        output, _ = apply_manifest("\n# nothing\n", cluster)
        assert output.startswith("error:")

    def test_failing_document_keeps_others(self, cluster):
        text = SERVICE + "---\nkind: Widget\nmetadata:\n  name: w\n"
        output, state = apply_manifest(text, cluster)
        assert output.splitlines()[0] == "service/web created"
        assert state.find(kind_for("Service"), "web") is not None


class TestCreate:
    def test_create_then_exists(self, cluster):
        output, state = create_manifest(SERVICE, cluster)
        assert output == "service/web created"
        output, again = create_manifest(SERVICE, state)
        assert output == 'Error from server (AlreadyExists): services "web" already exists'
        assert again is state

    def test_existing_namespace(self, cluster):
        output, _ = create_manifest("kind: Namespace\nmetadata:\n  name: default\n", cluster)
        assert "AlreadyExists" in output


class TestDelete:
    def test_delete_manifest(self, cluster):
        _, state = apply_manifest(DEPLOYMENT, cluster)
        output, state = delete_manifest(DEPLOYMENT, state)
        assert output == 'deployment.apps "web" deleted'
        assert state.deployments == ()
        assert pods_of(state, "web") == []
        assert state.replica_sets == ()

    def test_delete_missing(self, cluster):
        output, _ = delete_manifest(SERVICE, cluster)
        assert output == 'Error from server (NotFound): services "web" not found'

    def test_delete_unknown_type(self, cluster):
        output, _ = delete_manifest("kind: Widget\nmetadata:\n  name: w\n", cluster)
        assert output == 'error: the server doesn\'t have a resource type "Widget"'

    def test_delete_namespace_cascades(self, cluster):
        text = "kind: ConfigMap\nmetadata:\n  name: cfg\n  namespace: team-a\n"
        _, state = apply_manifest(text, cluster)
        state = delete_object("Namespace", "team-a", "default", state)
        assert "team-a" not in state.namespaces
        assert state.config_maps == ()
