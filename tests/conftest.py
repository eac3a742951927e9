"""
Shared test fixtures for kubequest tests.
"""

from __future__ import annotations

import pytest

from kubequest.cli import CommandContext, get_interpreter
from kubequest.core.cluster import ClusterState, initial_cluster_state
from kubequest.core.filesystem import FileSystem, initial_filesystem
from kubequest.core.host import HostState
from kubequest.core.objects import reseed
from kubequest.core.outcome import Text
from kubequest.core.tokenizer import tokenize
from kubequest.simulator import Simulator

DEPLOYMENT = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: web
spec:
  replicas: 3
  selector:
    matchLabels:
      app: web
  template:
    metadata:
      labels:
        app: web
    spec:
      containers:
      - name: nginx
        image: nginx:1.25
        ports:
        - containerPort: 80
"""

SERVICE = """\
apiVersion: v1
kind: Service
metadata:
  name: web
spec:
  selector:
    app: web
  ports:
  - port: 80
    targetPort: 8080
"""


@pytest.fixture(autouse=True)
def seeded():
    """Deterministic names, UIDs and IPs for every test."""
    reseed(1234)
    yield
    reseed(None)


@pytest.fixture
def cluster() -> ClusterState:
    return initial_cluster_state()


@pytest.fixture
def fs() -> FileSystem:
    return initial_filesystem()


@pytest.fixture
def host() -> HostState:
    return HostState()


@pytest.fixture
def sim() -> Simulator:
    return Simulator()


@pytest.fixture
def run(sim):
    """Run a line through the Simulator and return its text output."""

    def _run(line: str) -> str:
        outcome = sim.execute_command(line)
        return outcome.text if isinstance(outcome, Text) else outcome

    return _run


@pytest.fixture
def interpret(cluster, fs, host):
    """Run one line through its interpreter directly. Returns the CommandResult."""

    def _interpret(line: str, state: ClusterState | None = None, files: FileSystem | None = None, hosts: HostState | None = None):
        tokens = tokenize(line)
        interpreter = get_interpreter(tokens[0])
        ctx = CommandContext(tokens, line, state or cluster, files or fs, hosts or host)
        return interpreter.execute(ctx)

    return _interpret


@pytest.fixture
def kubectl(interpret, cluster):
    """Run a kubectl line and return (output text, resulting cluster state)."""

    def _kubectl(line: str, state: ClusterState | None = None) -> tuple[str, ClusterState]:
        state = state or cluster
        result = interpret(line, state=state)
        return str(result.output), result.cluster or state

    return _kubectl


def pods_of(state: ClusterState, app: str, namespace: str = "default") -> list[dict]:
    """Pods labelled app=<app> in a namespace."""
    return [
        p
        for p in state.pods
        if (p["metadata"].get("labels") or {}).get("app") == app
        and (p["metadata"].get("namespace") or "default") == namespace
    ]
