"""
Tab completion.

complete() takes the partial line and returns full candidate lines. A
single match is returned with a trailing space (a directory with a
trailing slash instead); several matches that share a prefix longer than
what was typed collapse to that prefix.
"""

from __future__ import annotations

from kubequest.cli import KNOWN_COMMANDS
from kubequest.cli.kubectl import KNOWN_VERBS
from kubequest.cli.kubectl.create import GENERATORS
from kubequest.cli.kubectl.rollout import SUBCOMMANDS as ROLLOUT_SUBCOMMANDS
from kubequest.cli.kubectl.set import USAGES as SET_USAGES
from kubequest.core.cluster import KINDS, ClusterState, lookup_kind, name_of, namespace_of
from kubequest.core.filesystem import FileSystem, get_node, resolve

RESOURCE_TYPES = sorted({name for kind in KINDS for name in kind.aliases} | {"all"})

OUTPUT_FORMATS = ["wide", "yaml", "json", "name", "jsonpath=", "custom-columns="]

CONFIG_SUBCOMMANDS = ["view", "current-context", "get-contexts", "get-clusters", "use-context"]

SERVICE_TYPES = ["clusterip", "nodeport", "loadbalancer", "externalname"]
SECRET_TYPES = ["generic", "docker-registry", "tls"]

FLAGS = {
    "get": ["--all-namespaces", "-A", "--namespace", "-n", "--output", "-o", "--watch", "-w", "--selector", "-l", "--show-labels"],
    "describe": ["--namespace", "-n", "--selector", "-l"],
    "delete": ["--namespace", "-n", "--force", "--grace-period", "--all", "--selector", "-l", "--filename", "-f"],
    "create": ["--dry-run", "--namespace", "-n", "--save-config", "-o", "--output", "--filename", "-f"],
    "create configmap": ["--from-literal", "--from-file", "--from-env-file", "--dry-run", "-o", "--output"],
    "create secret": ["--from-literal", "--from-file", "--from-env-file", "--type", "--dry-run", "-o", "--output"],
    "create deployment": ["--image", "--replicas", "--port", "--dry-run", "-o", "--output"],
    "create service": ["--tcp", "--dry-run", "-o", "--output"],
    "create role": ["--verb", "--resource", "--resource-name", "--dry-run", "-o", "--output"],
    "create clusterrole": ["--verb", "--resource", "--resource-name", "--dry-run", "-o", "--output"],
    "create rolebinding": ["--role", "--clusterrole", "--user", "--group", "--serviceaccount", "--dry-run", "-o", "--output"],
    "create clusterrolebinding": ["--clusterrole", "--user", "--group", "--serviceaccount", "--dry-run", "-o", "--output"],
    "run": ["--image", "--port", "--dry-run", "--restart", "--env", "--labels", "--command", "-o", "--output"],
    "apply": ["--filename", "-f", "--dry-run", "--force", "--prune"],
    "logs": ["--follow", "-f", "--tail", "--previous", "-p", "--container", "-c", "--timestamps"],
    "exec": ["--stdin", "-i", "--tty", "-t", "--container", "-c"],
    "scale": ["--replicas", "--current-replicas", "--resource-version"],
    "expose": ["--port", "--target-port", "--type", "--name", "--protocol", "--selector"],
    "label": ["--overwrite", "--all", "--resource-version"],
    "annotate": ["--overwrite", "--all", "--resource-version"],
    "autoscale": ["--min", "--max", "--cpu-percent", "--name"],
    "drain": ["--ignore-daemonsets", "--force", "--delete-emptydir-data", "--grace-period"],
    "rollout": ["--namespace", "-n", "--to-revision", "--revision"],
    "set": ["--all", "--dry-run", "-o", "--record", "--containers", "-c"],
    "top": ["--all-namespaces", "-A", "--containers", "--sort-by", "--namespace", "-n"],
    "auth": ["--as", "--as-group", "--list", "--namespace", "-n", "--all-namespaces", "-A"],
    "default": ["--namespace", "-n", "--output", "-o"],
}

# Flags whose next token is a value, not a positional argument
VALUE_FLAGS = frozenset(
    {"-n", "--namespace", "-o", "--output", "-f", "--filename", "-l", "--selector", "-c", "--container"}
)

FILE_COMMANDS = frozenset({"cat", "vim", "vi", "nano", "head", "tail", "grep", "rm", "cp", "mv", "touch", "wc", "dpkg"})
DIR_COMMANDS = frozenset({"cd", "mkdir", "tree"})


# === Matching ===


def find_common_prefix(candidates: list[str]) -> str:
    """Longest prefix shared by every candidate."""
    if not candidates:
        return ""
    prefix = candidates[0]
    for candidate in candidates[1:]:
        while not candidate.startswith(prefix):
            prefix = prefix[:-1]
            if not prefix:
                return ""
    return prefix


def _finish(candidates, partial: str, prefix: str) -> list[str]:
    """Filter candidates by the typed fragment and build full-line completions."""
    matches = sorted({c for c in candidates if c.startswith(partial)})
    if len(matches) == 1:
        match = matches[0]
        return [prefix + match + ("" if match.endswith("/") else " ")]
    common = find_common_prefix(matches)
    if len(common) > len(partial):
        return [prefix + common]
    return [prefix + m for m in matches]


# === Filesystem ===


def _path_candidates(partial: str, fs: FileSystem, include_files: bool) -> list[str]:
    head, slash, _ = partial.rpartition("/")
    directory = resolve(fs, head or "/") if slash else fs.current_path
    node = get_node(fs, directory)
    if node is None or not node.is_dir:
        return []
    base = head + slash
    names = []
    for name, child in node.children.items():
        if child.is_dir:
            names.append(f"{base}{name}/")
        elif include_files:
            names.append(f"{base}{name}")
    return names


# === kubectl ===


def _positionals(parts: list[str]) -> list[str]:
    """Non-flag words, skipping the values of flags that take one."""
    result = []
    skip = False
    for part in parts:
        if skip:
            skip = False
            continue
        if part.startswith("-"):
            skip = part in VALUE_FLAGS
            continue
        result.append(part)
    return result


def _flag_value(parts: list[str], *names: str) -> str | None:
    for i, part in enumerate(parts[:-1]):
        if part in names:
            return parts[i + 1]
    for part in parts:
        for name in names:
            if name.startswith("--") and part.startswith(name + "="):
                return part.split("=", 1)[1]
    return None


def resource_names(state: ClusterState, type_name: str, namespace: str | None = None) -> list[str]:
    """Live names of a resource type, filtered to a namespace when one is given."""
    if type_name in ("namespace", "namespaces", "ns"):
        return list(state.namespaces)
    kind = lookup_kind(type_name)
    if kind is None:
        return []
    return [
        name_of(r)
        for r in getattr(state, kind.field)
        if namespace is None or not kind.namespaced or namespace_of(r) == namespace
    ]


def _complete_kubectl(parts: list[str], partial: str, prefix: str, state: ClusterState, fs: FileSystem) -> list[str]:
    if len(parts) == 1:
        return _finish(KNOWN_VERBS, partial, prefix)

    last = parts[-1]
    if last in ("-n", "--namespace"):
        return _finish(state.namespaces, partial, prefix)
    if last in ("-o", "--output"):
        return _finish(OUTPUT_FORMATS, partial, prefix)
    if last in ("-f", "--filename"):
        return _finish(_path_candidates(partial, fs, True), partial, prefix)

    words = _positionals(parts[1:])
    if not words:
        return _finish(KNOWN_VERBS, partial, prefix)
    verb, rest = words[0], words[1:]
    namespace = _flag_value(parts, "-n", "--namespace")

    if partial.startswith("-"):
        key = f"{verb} {rest[0]}" if verb == "create" and rest and f"create {rest[0]}" in FLAGS else verb
        return _finish(FLAGS.get(key, FLAGS["default"]), partial, prefix)

    if verb in ("get", "describe", "delete", "edit", "label", "annotate"):
        if not rest:
            return _finish(RESOURCE_TYPES, partial, prefix)
        if len(rest) == 1 and "/" not in rest[0]:
            return _finish(resource_names(state, rest[0], namespace), partial, prefix)
        return []

    if verb == "create":
        if not rest:
            return _finish(GENERATORS, partial, prefix)
        if len(rest) == 1 and rest[0] in ("service", "svc"):
            return _finish(SERVICE_TYPES, partial, prefix)
        if len(rest) == 1 and rest[0] == "secret":
            return _finish(SECRET_TYPES, partial, prefix)
        return []

    if verb == "apply":
        return _finish(["-f", "--filename"], partial, prefix) if not rest else []

    if verb in ("logs", "log", "exec", "port-forward", "cp"):
        return _finish(resource_names(state, "pods", namespace), partial, prefix) if not rest else []

    if verb in ("scale", "autoscale", "expose"):
        types = ["deployment", "deploy", "statefulset", "sts", "replicaset", "rs"]
        if verb == "expose":
            types = ["deployment", "pod", "service", "replicaset"]
        if not rest:
            return _finish(types, partial, prefix)
        if len(rest) == 1:
            return _finish(resource_names(state, rest[0], namespace), partial, prefix)
        return []

    if verb == "rollout":
        if not rest:
            return _finish(ROLLOUT_SUBCOMMANDS, partial, prefix)
        if len(rest) == 1:
            return _finish(["deployment", "daemonset", "statefulset"], partial, prefix)
        if len(rest) == 2:
            return _finish(resource_names(state, rest[1], namespace), partial, prefix)
        return []

    if verb == "set":
        if not rest:
            return _finish(SET_USAGES, partial, prefix)
        if len(rest) == 1:
            return _finish([f"deployment/{n}" for n in resource_names(state, "deployments", namespace)], partial, prefix)
        return []

    if verb in ("taint", "cordon", "uncordon", "drain"):
        if verb == "taint" and not rest:
            return _finish(["node", "nodes"], partial, prefix)
        if verb == "taint" and len(rest) == 1 or verb != "taint" and not rest:
            return _finish(resource_names(state, "nodes"), partial, prefix)
        return []

    if verb == "top":
        if not rest:
            return _finish(["nodes", "node", "pods", "pod"], partial, prefix)
        if len(rest) == 1:
            return _finish(resource_names(state, rest[0], namespace), partial, prefix)
        return []

    if verb == "config":
        return _finish(CONFIG_SUBCOMMANDS, partial, prefix) if not rest else []

    if verb == "auth":
        return _finish(["can-i", "whoami"], partial, prefix) if not rest else []

    if verb == "explain":
        return _finish(RESOURCE_TYPES, partial, prefix) if not rest else []

    return []


# === Entry point ===


def _top_level() -> list[str]:
    return sorted(KNOWN_COMMANDS)


def complete(line: str, state: ClusterState, fs: FileSystem) -> list[str]:
    """Full-line completions for a partial input line."""
    stripped = line.lstrip()
    if not stripped:
        return _top_level()

    parts = stripped.split()
    if line.endswith(" "):
        partial = ""
        words = parts
        prefix = line
    else:
        partial = parts[-1]
        words = parts[:-1]
        prefix = line[: len(line) - len(partial)]

    if not words:
        return _finish(_top_level(), partial, prefix)

    command = words[0]
    if command in ("kubectl", "k"):
        return _complete_kubectl(words, partial, prefix, state, fs)
    if command == "sudo" and len(words) == 1:
        return _finish(_top_level(), partial, prefix)
    if command in FILE_COMMANDS or command == "ls":
        return _finish(_path_candidates(partial, fs, True), partial, prefix)
    if command in DIR_COMMANDS:
        return _finish(_path_candidates(partial, fs, False), partial, prefix)
    return []
