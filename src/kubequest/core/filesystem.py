"""
Virtual filesystem.

A rooted tree of FileNode objects plus a current-directory cursor and the
shell's environment map. FileSystem values are treated as immutable: a
command that changes anything calls clone_fs first and mutates the copy,
so a caller holding the old value never sees the change.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Literal

from kubequest.core.cluster import now

DEFAULT_HOME = "/home/user"


@dataclass
class FileNode:
    name: str
    type: Literal["file", "directory"]
    content: str = ""
    children: dict[str, FileNode] | None = None
    permissions: str = "-rw-r--r--"
    owner: str = "user"
    modified_at: str = field(default_factory=now)

    @property
    def is_dir(self) -> bool:
        return self.type == "directory"


@dataclass(frozen=True)
class FileSystem:
    root: FileNode
    current_path: str = DEFAULT_HOME
    env: dict[str, str] = field(default_factory=dict)
    home: str = DEFAULT_HOME


def make_dir(name: str, owner: str = "user") -> FileNode:
    return FileNode(name, "directory", children={}, permissions="drwxr-xr-x", owner=owner)


def make_file(name: str, content: str = "", owner: str = "user") -> FileNode:
    return FileNode(name, "file", content=content, owner=owner)


# === Paths ===


def normalize_path(path: str) -> str:
    """Collapse `.`, `..` and repeated slashes in an absolute path."""
    result: list[str] = []
    for part in path.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if result:
                result.pop()
        else:
            result.append(part)
    return "/" + "/".join(result)


def resolve_path(current: str, target: str, home: str = DEFAULT_HOME) -> str:
    """Resolve target against the current directory into an absolute path."""
    if target == "~":
        return home
    if target.startswith("~/"):
        return normalize_path(f"{home}/{target[2:]}")
    if target.startswith("/"):
        return normalize_path(target)
    return normalize_path(f"{current}/{target}")


def resolve(fs: FileSystem, target: str) -> str:
    return resolve_path(fs.current_path, target, fs.home)


def get_node(fs: FileSystem, path: str) -> FileNode | None:
    absolute = resolve(fs, path)
    current = fs.root
    for part in filter(None, absolute.split("/")):
        if not current.is_dir or current.children is None:
            return None
        nxt = current.children.get(part)
        if nxt is None:
            return None
        current = nxt
    return current


def get_parent_node(fs: FileSystem, path: str) -> tuple[FileNode, str] | None:
    """The directory that holds path, and path's final component."""
    parts = [p for p in resolve(fs, path).split("/") if p]
    if not parts:
        return None  # root has no parent
    name = parts.pop()
    parent = get_node(fs, "/" + "/".join(parts))
    if parent is None or not parent.is_dir:
        return None
    return parent, name


# === Mutation (call on a clone) ===


def create_node(fs: FileSystem, path: str, node: FileNode) -> bool:
    found = get_parent_node(fs, path)
    if found is None:
        return False
    parent, name = found
    if name in parent.children:
        return False
    node.name = name
    parent.children[name] = node
    parent.modified_at = now()
    return True


def delete_node(fs: FileSystem, path: str) -> bool:
    found = get_parent_node(fs, path)
    if found is None:
        return False
    parent, name = found
    if parent.children.pop(name, None) is None:
        return False
    parent.modified_at = now()
    return True


def clone_node(node: FileNode) -> FileNode:
    return copy.deepcopy(node)


def clone_fs(fs: FileSystem, **changes) -> FileSystem:
    """A private copy of the tree and env, with optional field changes."""
    return replace(fs, root=clone_node(fs.root), env=dict(fs.env), **changes)


# === Convenience ===


def read_file(fs: FileSystem, path: str) -> str | None:
    node = get_node(fs, path)
    if node is None or node.is_dir:
        return None
    return node.content


def write_file(fs: FileSystem, path: str, content: str, append: bool = False) -> FileSystem | None:
    """Write or append to a file, returning the new filesystem, or None if the parent is missing."""
    fs = clone_fs(fs)
    node = get_node(fs, path)
    if node is not None:
        if node.is_dir:
            return None
        node.content = f"{node.content}\n{content}" if append and node.content else content
        node.modified_at = now()
        return fs
    if not create_node(fs, path, make_file("", content)):
        return None
    return fs


def list_dir(fs: FileSystem, path: str) -> list[FileNode] | None:
    node = get_node(fs, path)
    if node is None or not node.is_dir:
        return None
    return sorted(node.children.values(), key=lambda n: n.name)


# === Initial filesystem ===

_KUBECONFIG = """apiVersion: v1
kind: Config
clusters:
- cluster:
    server: https://kubernetes.default.svc
    certificate-authority: /var/run/secrets/kubernetes.io/serviceaccount/ca.crt
  name: k8s-quest
contexts:
- context:
    cluster: k8s-quest
    user: default
  name: default
current-context: default
users:
- name: default
  user:
    token: <service-account-token>"""

_EXAMPLE_POD = """apiVersion: v1
kind: Pod
metadata:
  name: example-pod
  labels:
    app: example
spec:
  containers:
  - name: nginx
    image: nginx:latest
    ports:
    - containerPort: 80"""

_EXAMPLE_DEPLOYMENT = """apiVersion: apps/v1
kind: Deployment
metadata:
  name: example-deployment
spec:
  replicas: 3
  selector:
    matchLabels:
      app: example
  template:
    metadata:
      labels:
        app: example
    spec:
      containers:
      - name: nginx
        image: nginx:latest
        ports:
        - containerPort: 80"""


def _tree(spec: dict, owner: str = "user") -> dict[str, FileNode]:
    """Build children from a nested {name: str | dict} spec."""
    children = {}
    for name, value in spec.items():
        if isinstance(value, dict):
            node = make_dir(name, owner)
            node.children = _tree(value, owner)
        else:
            node = make_file(name, value, owner)
        children[name] = node
    return children


def initial_filesystem(home: str = DEFAULT_HOME) -> FileSystem:
    """The starting tree, with the cursor in the user's home directory."""
    root = make_dir("/", owner="root")
    root.children = _tree(
        {
            "etc": {
                "kubernetes": {
                    "admin.conf": "# Kubernetes admin config",
                    "manifests": {
                        "example-pod.yaml": _EXAMPLE_POD,
                        "example-deployment.yaml": _EXAMPLE_DEPLOYMENT,
                    },
                },
                "hosts": "127.0.0.1   localhost\n::1         localhost\n10.96.0.1   kubernetes.default.svc",
                "resolv.conf": "nameserver 10.96.0.10\nsearch default.svc.cluster.local svc.cluster.local cluster.local",
            },
            "tmp": {},
            "var": {"log": {"messages": "[system] K8s Quest started\n[kubelet] Node ready"}},
        }
    )
    root.children["root"] = make_dir("root", owner="root")

    fs = FileSystem(
        root=root,
        current_path=home,
        env={"PATH": "/usr/local/bin:/usr/bin:/bin", "HOME": home, "USER": "user"},
        home=home,
    )
    # Home may be nested anywhere; create it level by level
    path = ""
    for part in filter(None, home.split("/")):
        path += "/" + part
        if get_node(fs, path) is None:
            create_node(fs, path, make_dir(part))
    user_dir = get_node(fs, home)
    user_dir.children.update(
        _tree(
            {
                ".bashrc": '# ~/.bashrc\nexport PS1="\\u@k8s-quest:\\w$ "\nalias k=kubectl\nalias ll="ls -la"',
                ".kube": {"config": _KUBECONFIG},
            }
        )
    )
    return fs
