"""
kubectl interpreter.

Verb handlers live in sibling modules. Each exports:
- VERBS: list[str] - verbs it implements
- handle(ctx: Invocation) -> CommandResult

Handlers raise SimulatorError subclasses for user-facing failures; the
dispatcher renders them and returns the input state, so a failed command
never leaves a half-applied change behind.
"""

from __future__ import annotations

import importlib
from functools import lru_cache
from pathlib import Path

from kubequest.cli import CommandContext, CommandResult
from kubequest.cli.kubectl._common import parse, result
from kubequest.core import config
from kubequest.core.errors import SimulatorError, UnknownCommand

COMMANDS = ["kubectl", "k"]

CONNECTION_REFUSED = (
    'Error: couldn\'t get current server API group list: Get "https://127.0.0.1:6443/api?timeout=32s": '
    "dial tcp 127.0.0.1:6443: connect: connection refused\n"
    "The connection to the server 127.0.0.1:6443 was refused - did you specify the right host or port?\n"
    "\n"
    "etcd data is corrupted and the API server cannot start.\n"
    "Restore it from a backup with: etcdctl snapshot restore <snapshot-file>"
)

USAGE = """kubectl controls the Kubernetes cluster manager.

Basic Commands:
  create          Create a resource from a file or from stdin
  expose          Expose a deployment or pod as a new Kubernetes service
  run             Run a particular image on the cluster
  set             Set specific features on objects
  explain         Get documentation for a resource
  get             Display one or many resources
  edit            Edit a resource on the server
  delete          Delete resources by file names, resource types and names

Deploy Commands:
  rollout         Manage the rollout of a resource
  scale           Set a new size for a deployment
  autoscale       Auto-scale a deployment

Cluster Management Commands:
  cluster-info    Display cluster information
  top             Display resource (CPU/memory) usage
  cordon          Mark node as unschedulable
  uncordon        Mark node as schedulable
  drain           Drain node in preparation for maintenance
  taint           Update the taints on one or more nodes

Troubleshooting and Debugging Commands:
  describe        Show details of a specific resource or group of resources
  logs            Print the logs for a container in a pod
  exec            Execute a command in a container
  port-forward    Forward one or more local ports to a pod
  cp              Copy files and directories to and from containers
  auth            Inspect authorization

Advanced Commands:
  apply           Apply a configuration to a resource by file name

Settings Commands:
  label           Update the labels on a resource
  annotate        Update the annotations on a resource

Other Commands:
  api-resources   Print the supported API resources on the server
  config          Modify kubeconfig files
  version         Print the client and server version information

Usage:
  kubectl [flags] [options]"""


def _discover_verbs() -> dict[str, str]:
    """Discover verb modules and build verb -> module mapping."""
    verbs = {}
    for file in Path(__file__).parent.glob("*.py"):
        if file.name.startswith("_"):
            continue
        module = importlib.import_module(f".{file.stem}", package=__name__)
        for verb in getattr(module, "VERBS", []):
            verbs[verb] = file.stem
    return verbs


KNOWN_VERBS = _discover_verbs()


@lru_cache(maxsize=32)
def _load_verb(module_name: str):
    return importlib.import_module(f".{module_name}", package=__name__)


def get_verb_handler(verb: str):
    module_name = KNOWN_VERBS.get(verb)
    if not module_name:
        return None
    return _load_verb(module_name)


def execute(ctx: CommandContext) -> CommandResult:
    state = ctx.cluster
    if state.etcd.corrupted:
        return result(CONNECTION_REFUSED)

    invocation = parse(ctx.tokens, state, ctx.line, ctx.fs)
    if not invocation.verb:
        return result(USAGE)

    handler = get_verb_handler(invocation.verb)
    try:
        if handler is None:
            raise UnknownCommand(invocation.verb)
        return handler.handle(invocation)
    except SimulatorError as e:
        return result(e.render())
    except Exception as e:
        config.log("error", "unexpected_error", command=ctx.line, verb=invocation.verb, error=repr(e))
        return result(f"Error: {e}")
