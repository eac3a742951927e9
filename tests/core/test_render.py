"""Tests for YAML/JSON rendering and edit buffers."""

from __future__ import annotations

import json

import pytest

from kubequest.core.cluster import kind_for
from kubequest.core.manifest import apply_manifest, read_document
from kubequest.core.render import edit_yaml, to_json, to_yaml

from conftest import DEPLOYMENT


def test_to_yaml_layout():
    obj = {
        "a": 1,
        "b": {"c": "x"},
        "d": [1, {"e": "f", "g": "h"}],
        "empty": {},
        "none": None,
        "flag": True,
    }
    assert to_yaml(obj) == "\n".join(
        [
            "a: 1",
            "b:",
            "  c: x",
            "d:",
            "- 1",
            "- e: f",
            "  g: h",
            "empty: {}",
            "none: null",
            "flag: true",
        ]
    )


QUOTED = [
    ("yes", '"yes"'),
    ("80", '"80"'),
    ("", '""'),
    ("a: b", '"a: b"'),
    ("-dash", '"-dash"'),
    ("plain", "plain"),
    ("nginx:1.25", "nginx:1.25"),
]


@pytest.mark.parametrize("value,rendered", QUOTED)
def test_string_quoting(value: str, rendered: str):
    assert to_yaml({"k": value}) == f"k: {rendered}"


def test_multiline_string_block():
    assert to_yaml({"script": "echo a\necho b\n"}) == "script: |\n  echo a\n  echo b"
    assert to_yaml({"script": "a\nb"}) == "script: |-\n  a\n  b"


def test_yaml_reads_back(cluster):
    _, state = apply_manifest(DEPLOYMENT, cluster)
    deployment = state.find(kind_for("Deployment"), "web")
    doc = read_document(to_yaml(deployment))
    assert doc["spec"] == deployment["spec"]
    assert doc["metadata"]["name"] == "web"


def test_to_json():
    assert json.loads(to_json({"a": [1, 2]})) == {"a": [1, 2]}
    assert to_json({"a": 1}) == '{\n  "a": 1\n}'


class TestEditYaml:
    def test_deployment_view(self, cluster):
        _, state = apply_manifest(DEPLOYMENT, cluster)
        text = edit_yaml(state.find(kind_for("Deployment"), "web"))
        lines = text.splitlines()
        assert lines[:3] == ["apiVersion: apps/v1", "kind: Deployment", "metadata:"]
        assert "  replicas: 3" in lines
        assert "      - name: nginx" in lines
        assert "        image: nginx:1.25" in lines
        assert "status" not in text

    def test_config_map_multiline(self):
        cm = {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {"name": "cfg", "namespace": "default"},
            "data": {"app.conf": "a=1\nb=2\n", "mode": "fast"},
        }
        text = edit_yaml(cm)
        assert "  app.conf: |\n    a=1\n    b=2" in text
        assert "  mode: fast" in text
        assert read_document(text)["data"]["app.conf"] == "a=1\nb=2\n"

    def test_empty_config_map(self):
        cm = {"kind": "ConfigMap", "metadata": {"name": "cfg"}}
        assert edit_yaml(cm).endswith("data: {}")
