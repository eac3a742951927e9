"""
etcdctl interpreter.

Operates on the cluster's ETCDCluster substate. Any https endpoint requires
--cacert, --cert and --key (or the matching ETCDCTL_* environment
variables). While etcd is corrupted only the local snapshot operations
work, and `snapshot restore` is the one command that clears the
corruption.
"""

from __future__ import annotations

import json
import zlib
from dataclasses import dataclass, field, replace
from typing import Optional

from kubequest.cli import CommandContext, CommandResult
from kubequest.core import config
from kubequest.core.cluster import KINDS, ClusterState, ETCDBackup, ETCDMember, name_of, namespace_of, now
from kubequest.core.filesystem import FileSystem, resolve, write_file
from kubequest.core.objects import generate_uid
from kubequest.core.outcome import Text

COMMANDS = ["etcdctl"]

DEFAULT_ENDPOINT = "https://127.0.0.1:2379"
DEFAULT_DATA_DIR = "/var/lib/etcd"
API_VERSION = "3.5"

BOOL_FLAGS = frozenset({"prefix", "keys-only", "print-value-only", "cluster", "learner", "debug"})

# Flags read from ETCDCTL_<NAME> when not given on the command line
ENV_FLAGS = ("endpoints", "cacert", "cert", "key")

# Snapshot subcommands that read a local file and never dial the server
LOCAL_SNAPSHOT_COMMANDS = frozenset({"status", "restore"})


@dataclass(frozen=True)
class EtcdArgs:
    args: tuple[str, ...]
    flags: dict[str, str] = field(default_factory=dict)

    def flag(self, name: str, default: str | None = None) -> str | None:
        return self.flags.get(name, default)

    @property
    def endpoints(self) -> list[str]:
        return [e for e in self.flag("endpoints", DEFAULT_ENDPOINT).split(",") if e]


def parse_args(tokens: list[str], env: dict[str, str]) -> EtcdArgs:
    flags: dict[str, str] = {}
    args: list[str] = []
    i = 1
    while i < len(tokens):
        token = tokens[i]
        if token.startswith("-") and len(token) > 1:
            name = token.lstrip("-")
            if "=" in name:
                name, value = name.split("=", 1)
            elif name in BOOL_FLAGS:
                value = "true"
            elif i + 1 < len(tokens) and not tokens[i + 1].startswith("-"):
                value = tokens[i + 1]
                i += 1
            else:
                value = "true"
            flags["write-out" if name == "w" else name] = value
        else:
            args.append(token)
        i += 1
    for name in ENV_FLAGS:
        env_value = env.get(f"ETCDCTL_{name.upper()}")
        if env_value and name not in flags:
            flags[name] = env_value
    return EtcdArgs(tuple(args), flags)


def check_tls(opts: EtcdArgs) -> str | None:
    """The first missing TLS flag error, or None when the connection is allowed."""
    if not any(e.startswith("https://") for e in opts.endpoints):
        return None
    for name in ("cacert", "cert", "key"):
        if not opts.flag(name):
            return f"Error: etcdserver: request requires TLS client certificates, please provide --{name}"
    return None


def execute(ctx: CommandContext) -> CommandResult:
    state = ctx.cluster
    opts = parse_args(ctx.tokens, ctx.fs.env)
    sub = opts.args[0] if opts.args else None
    if sub is None:
        return CommandResult(Text(USAGE))
    if sub == "version":
        return CommandResult(Text(f"etcdctl version: {state.etcd.version}\nAPI version: {API_VERSION}"))

    local = sub == "snapshot" and len(opts.args) > 1 and opts.args[1] in LOCAL_SNAPSHOT_COMMANDS
    if state.etcd.corrupted and not local:
        return CommandResult(
            Text(
                "Error: context deadline exceeded\n"
                f"Error: unhealthy cluster: failed to connect to etcd member at {opts.endpoints[0]}\n"
                "Please restore etcd from backup."
            )
        )
    if not local:
        error = check_tls(opts)
        if error:
            return CommandResult(Text(error))

    handler = _HANDLERS.get(sub)
    if handler is None:
        return CommandResult(Text(f'Error: unknown command "{sub}" for "etcdctl"'))
    output, new_state, new_fs = handler(opts, state, ctx.fs)
    return CommandResult(Text(output), cluster=new_state, fs=new_fs)


USAGE = """NAME:
\tetcdctl - A simple command line client for etcd3.

USAGE:
\tetcdctl [flags]

COMMANDS:
\talarm disarm\t\tDisarms all alarms
\talarm list\t\tLists all alarms
\tdefrag\t\t\tDefragments the storage of the etcd members with given endpoints
\tdel\t\t\tRemoves the specified key or range of keys [key, range_end)
\tendpoint health\t\tChecks the healthiness of endpoints specified in `--endpoints` flag
\tendpoint status\t\tPrints out the status of endpoints specified in `--endpoints` flag
\tget\t\t\tGets the key or a range of keys
\tmember add\t\tAdds a member into the cluster
\tmember list\t\tLists all members in the cluster
\tmember remove\t\tRemoves a member from the cluster
\tput\t\t\tPuts the given key into the store
\tsnapshot restore\tRestores an etcd member snapshot to an etcd directory
\tsnapshot save\t\tStores an etcd node backend snapshot to a given file
\tsnapshot status\t\tGets backend snapshot status of a given file
\tversion\t\t\tPrints the version of etcdctl"""

Outcome = tuple[str, Optional[ClusterState], Optional[FileSystem]]


def _with_etcd(state: ClusterState, **changes) -> ClusterState:
    return replace(state, etcd=replace(state.etcd, **changes))


def _boxed(header: list[str], rows: list[list[str]]) -> str:
    """etcdctl's `-w table` layout."""
    widths = [len(h) for h in header]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(cell))
    rule = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
    head = "|" + "|".join(f" {h.center(w)} " for h, w in zip(header, widths)) + "|"
    lines = [rule, head, rule]
    for row in rows:
        lines.append("|" + "|".join(f" {cell.rjust(w) if cell.isdigit() else cell.ljust(w)} " for cell, w in zip(row, widths)) + "|")
    lines.append(rule)
    return "\n".join(lines)


def _megabytes(size: int) -> str:
    return f"{size / 1024 / 1024:.1f} MB"


# === member ===


def _member(opts: EtcdArgs, state: ClusterState, fs: FileSystem) -> Outcome:
    sub = opts.args[1] if len(opts.args) > 1 else None
    etcd = state.etcd
    if sub == "list":
        rows = [
            [
                m.id,
                "started" if m.status == "healthy" else m.status,
                m.name,
                ",".join(m.peer_urls),
                ",".join(m.client_urls),
                "false",
            ]
            for m in etcd.members
        ]
        if opts.flag("write-out", "table") == "table":
            return _boxed(["ID", "STATUS", "NAME", "PEER ADDRS", "CLIENT ADDRS", "IS LEARNER"], rows), None, None
        return "\n".join(", ".join(r) for r in rows), None, None

    if sub == "add":
        peer_urls = opts.flag("peer-urls")
        if not peer_urls:
            return "Error: member peer urls not provided", None, None
        name = opts.args[2] if len(opts.args) > 2 else f"etcd-{len(etcd.members)}"
        if any(m.name == name for m in etcd.members):
            return f"Error: etcdserver: member name {name} already exists", None, None
        peers = tuple(peer_urls.split(","))
        member = ETCDMember(
            id=generate_uid().replace("-", "")[:16],
            name=name,
            peer_urls=peers,
            client_urls=tuple(u.replace(":2380", ":2379") for u in peers),
            status="unknown",
        )
        config.log("info", "etcd_member_add", member=member.id, name=name)
        output = (
            f"Member {member.id} added to cluster {etcd.cluster_id}\n\n"
            f'ETCD_NAME="{name}"\n'
            f'ETCD_INITIAL_CLUSTER="{",".join(f"{m.name}={m.peer_urls[0]}" for m in (*etcd.members, member))}"\n'
            f'ETCD_INITIAL_ADVERTISE_PEER_URLS="{peer_urls}"\n'
            'ETCD_INITIAL_CLUSTER_STATE="existing"'
        )
        return output, _with_etcd(state, members=etcd.members + (member,)), None

    if sub == "remove":
        member_id = opts.args[2] if len(opts.args) > 2 else None
        if not member_id:
            return "Error: member ID is not provided", None, None
        target = next((m for m in etcd.members if m.id == member_id), None)
        if target is None:
            return "Error: etcdserver: member not found", None, None
        members = tuple(m for m in etcd.members if m is not target)
        if target.is_leader and members:
            members = (replace(members[0], is_leader=True),) + members[1:]
        config.log("info", "etcd_member_remove", member=member_id)
        return f"Member {member_id} removed from cluster {etcd.cluster_id}", _with_etcd(state, members=members), None

    return f'Error: unknown member command "{sub}"', None, None


# === endpoint ===


def _member_at(state: ClusterState, endpoint: str) -> ETCDMember | None:
    members = state.etcd.members
    return next((m for m in members if endpoint in m.client_urls), members[0] if members else None)


def _took(text: str) -> str:
    return f"{1 + zlib.crc32(text.encode()) % 900 / 100:.2f}ms"


def _endpoint(opts: EtcdArgs, state: ClusterState, fs: FileSystem) -> Outcome:
    sub = opts.args[1] if len(opts.args) > 1 else None
    if opts.flag("cluster") == "true":
        targets = [(m.client_urls[0], m) for m in state.etcd.members]
    else:
        targets = [(e, _member_at(state, e)) for e in opts.endpoints]

    if sub == "health":
        lines = []
        failed = False
        for endpoint, member in targets:
            if member is not None and member.status == "healthy":
                lines.append(f"{endpoint} is healthy: successfully committed proposal: took = {_took(endpoint)}")
            else:
                failed = True
                lines.append(f"{endpoint} is unhealthy: failed to commit proposal: context deadline exceeded")
        if failed:
            lines.append("Error: unhealthy cluster")
        return "\n".join(lines), None, None

    if sub == "status":
        rows = []
        for endpoint, member in targets:
            if member is None:
                continue
            rows.append(
                [
                    endpoint,
                    member.id,
                    state.etcd.version,
                    _megabytes(member.db_size),
                    str(member.is_leader).lower(),
                    "false",
                    "4",
                    "1234",
                    "1234",
                    "",
                ]
            )
        if opts.flag("write-out", "table") == "table":
            header = [
                "ENDPOINT", "ID", "VERSION", "DB SIZE", "IS LEADER",
                "IS LEARNER", "RAFT TERM", "RAFT INDEX", "RAFT APPLIED INDEX", "ERRORS",
            ]
            return _boxed(header, rows), None, None
        return "\n".join(", ".join(r[:9]) + "," for r in rows), None, None

    return f'Error: unknown endpoint command "{sub}"', None, None


# === snapshot ===


def _snapshot_meta(path: str) -> tuple[str, int, int, int]:
    """(hash, revision, total keys, size) for a snapshot file, stable per path."""
    seed = zlib.crc32(path.encode())
    return f"{seed:08x}", 1000 + seed % 9000, 200 + seed % 800, 4194304 + seed % 4194304


def _snapshot(opts: EtcdArgs, state: ClusterState, fs: FileSystem) -> Outcome:
    sub = opts.args[1] if len(opts.args) > 1 else None
    path = opts.args[2] if len(opts.args) > 2 else None
    if sub not in ("save", "restore", "status"):
        return f'Error: unknown snapshot command "{sub}"', None, None
    if not path:
        return f"Error: snapshot {sub} expects one argument", None, None
    full = resolve(fs, path)

    if sub == "save":
        digest, revision, keys, size = _snapshot_meta(full)
        new_fs = write_file(fs, full, f"etcd-snapshot revision={revision} keys={keys}\n")
        if new_fs is None:
            return f"Error: could not open {path}.part (open {path}.part: no such file or directory)", None, None
        backup = ETCDBackup(name=full.rsplit("/", 1)[-1], timestamp=now(), size=size, path=full)
        backups = tuple(b for b in state.etcd.backups if b.path != full) + (backup,)
        config.log("info", "etcd_snapshot_save", path=full)
        stamp = now()
        endpoint = opts.endpoints[0]
        lines = [
            json.dumps({"level": "info", "ts": stamp, "caller": "snapshot/v3_snapshot.go:65", "msg": "created temporary db file", "path": f"{path}.part"}),
            json.dumps({"level": "info", "ts": stamp, "caller": "snapshot/v3_snapshot.go:73", "msg": "fetching snapshot", "endpoint": endpoint}),
            json.dumps({"level": "info", "ts": stamp, "caller": "snapshot/v3_snapshot.go:88", "msg": "fetched snapshot", "endpoint": endpoint, "size": _megabytes(size)}),
            json.dumps({"level": "info", "ts": stamp, "caller": "snapshot/v3_snapshot.go:97", "msg": "saved", "path": path}),
            f"Snapshot saved at {path}",
        ]
        return "\n".join(lines), _with_etcd(state, backups=backups), new_fs

    if sub == "status":
        digest, revision, keys, size = _snapshot_meta(full)
        backup = next((b for b in state.etcd.backups if b.path == full), None)
        if backup is not None:
            size = backup.size
        if opts.flag("write-out", "table") == "table":
            return _boxed(["HASH", "REVISION", "TOTAL KEYS", "TOTAL SIZE"], [[digest, str(revision), str(keys), _megabytes(size)]]), None, None
        return f"{digest}, {revision}, {keys}, {_megabytes(size)}", None, None

    data_dir = opts.flag("data-dir", DEFAULT_DATA_DIR)
    members = tuple(replace(m, status="healthy") for m in state.etcd.members)
    config.log("info", "etcd_restore", path=full, data_dir=data_dir, was_corrupted=state.etcd.corrupted)
    dirs = f'"path": "{path}", "wal-dir": "{data_dir}/member/wal", "data-dir": "{data_dir}", "snap-dir": "{data_dir}/member/snap"'
    stamp = now()
    output = "\n".join(
        [
            "Deprecated: Use `etcdutl snapshot restore` instead.",
            "",
            f"{stamp}\tinfo\tsnapshot/v3_snapshot.go:251\trestoring snapshot\t{{{dirs}}}",
            f"{stamp}\tinfo\tmembership/store.go:141\tTrimming membership info from the backend...",
            f"{stamp}\tinfo\tsnapshot/v3_snapshot.go:272\trestored snapshot\t{{{dirs}}}",
        ]
    )
    return output, _with_etcd(state, corrupted=False, members=members), None


# === keys ===


def registry(state: ClusterState) -> dict[str, dict]:
    """The /registry keyspace the API server would keep in etcd."""
    keys: dict[str, dict] = {}
    for kind in KINDS:
        if kind.kind == "Namespace":
            for ns in state.namespaces:
                keys[f"/registry/namespaces/{ns}"] = {"kind": "Namespace", "apiVersion": "v1", "metadata": {"name": ns}}
            continue
        for obj in getattr(state, kind.field):
            if kind.namespaced:
                keys[f"/registry/{kind.plural}/{namespace_of(obj)}/{name_of(obj)}"] = obj
            else:
                keys[f"/registry/{kind.plural}/{name_of(obj)}"] = obj
    return keys


def _get(opts: EtcdArgs, state: ClusterState, fs: FileSystem) -> Outcome:
    key = opts.args[1] if len(opts.args) > 1 else None
    if not key:
        return "Error: get command needs one argument as key and an optional argument as range_end", None, None
    keys = registry(state)
    if opts.flag("prefix") == "true":
        matched = sorted(k for k in keys if k.startswith(key))
    else:
        matched = [key] if key in keys else []
    lines = []
    for k in matched:
        value = json.dumps({"kind": keys[k].get("kind"), "apiVersion": keys[k].get("apiVersion"), "metadata": keys[k].get("metadata")}, separators=(",", ":"))
        if opts.flag("keys-only") == "true":
            lines.append(k)
        elif opts.flag("print-value-only") == "true":
            lines.append(value)
        else:
            lines += [k, value]
    return "\n".join(lines), None, None


def _put(opts: EtcdArgs, state: ClusterState, fs: FileSystem) -> Outcome:
    if len(opts.args) < 3:
        return "Error: put command needs 1 argument and input from stdin or 2 arguments", None, None
    return "OK", None, None


def _del(opts: EtcdArgs, state: ClusterState, fs: FileSystem) -> Outcome:
    key = opts.args[1] if len(opts.args) > 1 else None
    if not key:
        return "Error: del command needs one argument as key and an optional argument as range_end", None, None
    keys = registry(state)
    if opts.flag("prefix") == "true":
        return str(sum(1 for k in keys if k.startswith(key))), None, None
    return "1" if key in keys else "0", None, None


# === maintenance ===


def _alarm(opts: EtcdArgs, state: ClusterState, fs: FileSystem) -> Outcome:
    sub = opts.args[1] if len(opts.args) > 1 else None
    if sub == "list":
        return "", None, None
    if sub == "disarm":
        return "alarm disarmed", None, None
    return f'Error: unknown alarm command "{sub}"', None, None


def _defrag(opts: EtcdArgs, state: ClusterState, fs: FileSystem) -> Outcome:
    members = tuple(replace(m, db_size=m.db_size_in_use) for m in state.etcd.members)
    lines = [f"Finished defragmenting etcd member[{m.client_urls[0]}]" for m in state.etcd.members]
    config.log("info", "etcd_defrag", members=len(members))
    return "\n".join(lines), _with_etcd(state, members=members), None


_HANDLERS = {
    "member": _member,
    "endpoint": _endpoint,
    "snapshot": _snapshot,
    "get": _get,
    "put": _put,
    "del": _del,
    "alarm": _alarm,
    "defrag": _defrag,
}
