"""
Host administration commands: systemctl, dpkg, sysctl, wget, curl.

Units, packages and kernel parameters live on HostState. Restarting the
kubelet after etcd has been restored is what brings the control plane
components back to Running.
"""

from __future__ import annotations

import zlib
from dataclasses import replace
from datetime import datetime, timezone

from kubequest.cli import CommandContext, CommandResult
from kubequest.core import config
from kubequest.core.cluster import ClusterState, now
from kubequest.core.filesystem import get_node, list_dir, read_file, resolve, write_file
from kubequest.core.host import HostState, Package, Unit
from kubequest.core.outcome import Text

COMMANDS = ["systemctl", "dpkg", "sysctl", "wget", "curl"]

SYSCTL_CONF = "/etc/sysctl.conf"
SYSCTL_DIR = "/etc/sysctl.d"


def _text(output: str, **changes) -> CommandResult:
    return CommandResult(Text(output), **changes)


def execute(ctx: CommandContext) -> CommandResult:
    handler = {
        "systemctl": _systemctl,
        "dpkg": _dpkg,
        "sysctl": _sysctl,
        "wget": _wget,
        "curl": _curl,
    }[ctx.tokens[0]]
    return handler(ctx, list(ctx.tokens[1:]))


# === systemctl ===


def restart_control_plane(state: ClusterState) -> ClusterState:
    """Mark every system component Running again, as a kubelet restart would."""
    stamp = now()
    components = tuple(replace(c, status="Running", last_heartbeat=stamp) for c in state.system_components)
    return replace(state, system_components=components)


def _set_kubelet(state: ClusterState, status: str) -> ClusterState:
    components = tuple(
        replace(c, status=status) if c.name == "kubelet" and c.node == "control-plane" else c
        for c in state.system_components
    )
    return replace(state, system_components=components)


def _unit_status(unit: Unit) -> str:
    seed = zlib.crc32(unit.name.encode())
    active = "active (running)" if unit.active else "inactive (dead)"
    enabled = "enabled" if unit.enabled else "disabled"
    since = datetime.now(timezone.utc).strftime("%a %Y-%m-%d %H:%M:%S UTC")
    lines = [
        f"● {unit.name}.service - {unit.name.capitalize()} Service",
        f"     Loaded: loaded (/lib/systemd/system/{unit.name}.service; {enabled}; vendor preset: enabled)",
        f"     Active: {active} since {since}",
    ]
    if unit.active:
        lines += [
            f"   Main PID: {1000 + seed % 9000} ({unit.name})",
            f"      Tasks: {5 + seed % 45}",
            f"     Memory: {50 + seed % 450}.0M",
            f"        CPU: {seed % 10}.{seed % 100:02d}s",
            f"     CGroup: /system.slice/{unit.name}.service",
        ]
    return "\n".join(lines)


def _systemctl(ctx: CommandContext, args: list[str]) -> CommandResult:
    args = [a for a in args if a not in ("--now", "--no-pager", "-q", "--quiet")]
    if not args:
        return _text("Usage: systemctl [start|stop|restart|enable|disable|status] <service>")
    action, names = args[0], [n.removesuffix(".service") for n in args[1:]]
    host = ctx.host

    if action == "daemon-reload":
        return _text("")
    if action in ("list-units", "list-unit-files"):
        rows = [f"{'UNIT':<24}{'ACTIVE':<10}STATE"]
        rows += [
            f"{u.name + '.service':<24}{'active' if u.active else 'inactive':<10}{'enabled' if u.enabled else 'disabled'}"
            for u in host.units
        ]
        return _text("\n".join(rows))
    if action not in ("start", "stop", "restart", "reload", "enable", "disable", "status", "is-active", "is-enabled"):
        return _text(f"Unknown command verb {action}.")
    if not names:
        return _text("Too few arguments.")

    cluster = ctx.cluster
    outputs = []
    for name in names:
        unit = host.unit(name)
        if action == "enable":
            unit = unit or Unit(name, active=False, enabled=False)
            host = host.with_unit(replace(unit, enabled=True))
            outputs.append(
                f"Created symlink /etc/systemd/system/multi-user.target.wants/{name}.service "
                f"→ /lib/systemd/system/{name}.service."
            )
            continue
        if unit is None:
            if action == "status":
                outputs.append(f"Unit {name}.service could not be found.")
            elif action == "is-active":
                outputs.append("inactive")
            elif action == "is-enabled":
                outputs.append(f"Failed to get unit file state for {name}.service: No such file or directory")
            else:
                outputs.append(f"Failed to {action} {name}.service: Unit {name}.service not found.")
            continue

        if action == "status":
            outputs.append(_unit_status(unit))
        elif action == "is-active":
            outputs.append("active" if unit.active else "inactive")
        elif action == "is-enabled":
            outputs.append("enabled" if unit.enabled else "disabled")
        elif action == "disable":
            host = host.with_unit(replace(unit, enabled=False))
            outputs.append(f"Removed /etc/systemd/system/multi-user.target.wants/{name}.service.")
        elif action == "stop":
            host = host.with_unit(replace(unit, active=False))
            if name == "kubelet":
                cluster = _set_kubelet(cluster, "Stopped")
        else:
            host = host.with_unit(replace(unit, active=True))
            if name == "kubelet":
                if cluster.etcd.corrupted:
                    cluster = _set_kubelet(cluster, "Running")
                else:
                    cluster = restart_control_plane(cluster)
        config.log("info", "systemctl", action=action, unit=name)

    changed_cluster = cluster if cluster is not ctx.cluster else None
    return _text("\n".join(o for o in outputs if o), host=host, cluster=changed_cluster)


# === dpkg ===


def _package_name(path: str) -> tuple[str, str]:
    """(name, version) from a .deb file name such as cri-dockerd_0.3.6.3.amd64.deb."""
    stem = path.rsplit("/", 1)[-1].removesuffix(".deb")
    name, _, rest = stem.partition("_")
    version = rest.rsplit(".", 1)[0] if rest.endswith((".amd64", ".arm64")) else rest
    return name, version or "1.0.0"


def _dpkg_list(host: HostState, pattern: str | None) -> str:
    header = [
        "Desired=Unknown/Install/Remove/Purge/Hold",
        "| Status=Not/Inst/Conf-files/Unpacked/halF-conf/Half-inst/trig-aWait/Trig-pend",
        "|/ Err?=(none)/Reinst-required (Status,Err: uppercase=bad)",
        "||/ Name           Version      Architecture Description",
        "+++-==============-============-============-=================================",
    ]
    packages = sorted(host.packages, key=lambda p: p.name)
    if pattern:
        packages = [p for p in packages if pattern.strip("*") in p.name]
        if not packages:
            return f"dpkg-query: no packages found matching {pattern}"
    rows = [
        f"ii  {p.name:<14} {p.version:<12} {p.architecture:<12} {p.description}"
        for p in packages
    ]
    return "\n".join(header + rows)


def _dpkg(ctx: CommandContext, args: list[str]) -> CommandResult:
    usage = "dpkg: need an action option\nUsage: dpkg -i <package.deb>"
    if not args:
        return _text(usage)
    action = args[0]
    host = ctx.host

    if action in ("-i", "--install"):
        if len(args) < 2:
            return _text(usage)
        outputs = []
        for path in args[1:]:
            if get_node(ctx.fs, path) is None:
                outputs.append(
                    f"dpkg: error processing archive {path} (--install):\n"
                    " cannot access archive: No such file or directory"
                )
                continue
            name, version = _package_name(path)
            host = host.with_package(Package(name, version, f"{name} package"))
            # cri-dockerd ships the cri-docker unit
            unit_name = "cri-docker" if name == "cri-dockerd" else name
            if host.unit(unit_name) is None:
                host = host.with_unit(Unit(unit_name, active=False, enabled=False))
            config.log("info", "dpkg_install", package=name, version=version)
            outputs.append(
                f"Selecting previously unselected package {name}.\n"
                "(Reading database ... 150000 files and directories currently installed.)\n"
                f"Preparing to unpack {path} ...\n"
                f"Unpacking {name} ({version}) ...\n"
                f"Setting up {name} ({version}) ..."
            )
        return _text("\n".join(outputs), host=host)

    if action in ("-l", "--list"):
        return _text(_dpkg_list(host, args[1] if len(args) > 1 else None))

    if action in ("-s", "--status"):
        if len(args) < 2:
            return _text("dpkg-query: --status needs at least one package name argument")
        package = next((p for p in host.packages if p.name == args[1]), None)
        if package is None:
            return _text(f"dpkg-query: package '{args[1]}' is not installed and no information is available")
        return _text(
            f"Package: {package.name}\nStatus: install ok installed\n"
            f"Architecture: {package.architecture}\nVersion: {package.version}\n"
            f"Description: {package.description}"
        )

    if action in ("-r", "--remove"):
        if len(args) < 2:
            return _text("dpkg: error: --remove needs at least one package name argument")
        if all(p.name != args[1] for p in host.packages):
            return _text(f"dpkg: warning: ignoring request to remove {args[1]} which isn't installed")
        host = replace(host, packages=tuple(p for p in host.packages if p.name != args[1]))
        return _text(f"Removing {args[1]} ...", host=host)

    return _text(f"dpkg: error: unknown option {action}")


# === sysctl ===


def _parse_sysctl(content: str) -> list[tuple[str, str]]:
    settings = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith(("#", ";")) or "=" not in line:
            continue
        key, _, value = line.partition("=")
        settings.append((key.strip(), value.strip()))
    return settings


def _sysctl(ctx: CommandContext, args: list[str]) -> CommandResult:
    host = ctx.host
    if not args or args[0] in ("-a", "--all"):
        return _text("\n".join(f"{k} = {v}" for k, v in sorted(host.sysctl.items())))

    action = args[0]
    if action in ("-w", "--write"):
        if len(args) < 2:
            return _text("sysctl: must provide parameter to set")
        lines = []
        for param in args[1:]:
            key, sep, value = param.partition("=")
            if not sep or not key:
                return _text(f'sysctl: "{param}" must be of the form name=value')
            host = host.with_sysctl(key.strip(), value.strip())
            lines.append(f"{key.strip()} = {value.strip()}")
        return _text("\n".join(lines), host=host)

    if action in ("-p", "--load"):
        path = args[1] if len(args) > 1 else SYSCTL_CONF
        content = read_file(ctx.fs, path)
        if content is None:
            return _text(f"sysctl: cannot open \"{path}\": No such file or directory")
        return _load(host, [content])

    if action == "--system":
        contents = [
            node.content
            for node in (list_dir(ctx.fs, SYSCTL_DIR) or [])
            if not node.is_dir and node.name.endswith(".conf")
        ]
        conf = read_file(ctx.fs, SYSCTL_CONF)
        if conf is not None:
            contents.append(conf)
        return _load(host, contents)

    lines = []
    for key in args:
        if key not in host.sysctl:
            return _text(f"sysctl: cannot stat /proc/sys/{key.replace('.', '/')}: No such file or directory")
        lines.append(f"{key} = {host.sysctl[key]}")
    return _text("\n".join(lines))


def _load(host: HostState, contents: list[str]) -> CommandResult:
    lines = []
    for content in contents:
        for key, value in _parse_sysctl(content):
            host = host.with_sysctl(key, value)
            lines.append(f"{key} = {value}")
    return _text("\n".join(lines), host=host)


# === wget / curl ===

DOWNLOADS = {
    "tigera-operator": """# Tigera Operator for Calico
apiVersion: v1
kind: Namespace
metadata:
  name: tigera-operator
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: tigera-operator
  namespace: tigera-operator
spec:
  replicas: 1
  selector:
    matchLabels:
      name: tigera-operator
  template:
    metadata:
      labels:
        name: tigera-operator
    spec:
      containers:
      - name: tigera-operator
        image: quay.io/tigera/operator:v1.30.0""",
    "custom-resources": """# Calico Custom Resources
apiVersion: operator.tigera.io/v1
kind: Installation
metadata:
  name: default
spec:
  calicoNetwork:
    ipPools:
    - cidr: 192.168.0.0/16""",
    "flannel": """# Flannel CNI
apiVersion: v1
kind: Namespace
metadata:
  name: kube-flannel""",
}

NGINX_PAGE = """<!DOCTYPE html>
<html>
<head><title>Welcome to nginx!</title></head>
<body>
<h1>Welcome to nginx!</h1>
<p>If you see this page, nginx is working correctly.</p>
</body>
</html>"""


def _download(url: str) -> str:
    for marker, content in DOWNLOADS.items():
        if marker in url:
            return content
    return f"# Downloaded from {url}\n# Content placeholder"


def _find_url(args: list[str]) -> str | None:
    return next((a for a in args if a.startswith(("http://", "https://"))), None)


def _wget(ctx: CommandContext, args: list[str]) -> CommandResult:
    url = _find_url(args)
    if url is None:
        return _text("wget: missing URL\nUsage: wget [OPTION]... [URL]...")
    filename = url.rstrip("/").rsplit("/", 1)[-1] if "/" in url.split("://", 1)[1] else "index.html"
    for i, arg in enumerate(args):
        if arg in ("-O", "--output-document") and i + 1 < len(args):
            filename = args[i + 1]
        elif arg.startswith("--output-document="):
            filename = arg.split("=", 1)[1]

    content = _download(url)
    fs = write_file(ctx.fs, filename, content)
    if fs is None:
        return _text(f"{filename}: No such file or directory")
    config.log("info", "wget", url=url, path=resolve(ctx.fs, filename))
    if "-q" in args or "--quiet" in args:
        return _text("", fs=fs)

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    host = url.split("://", 1)[1].split("/", 1)[0]
    size = len(content)
    return _text(
        f"--{stamp}--  {url}\n"
        f"Resolving {host}... connected.\n"
        "HTTP request sent, awaiting response... 200 OK\n"
        f"Length: {size} ({size / 1024:.1f}K) [application/octet-stream]\n"
        f"Saving to: '{filename}'\n\n"
        f"{filename:<24}100%[===================>] {size / 1024:.1f}K  --.-KB/s    in 0s\n\n"
        f"{stamp} - '{filename}' saved [{size}/{size}]",
        fs=fs,
    )


def _curl(ctx: CommandContext, args: list[str]) -> CommandResult:
    url = _find_url(args)
    if url is None:
        return _text("curl: no URL specified!\ncurl: try 'curl --help' for more information")

    if "web.k8snginx.local" in url:
        body = NGINX_PAGE
    elif any(marker in url for marker in DOWNLOADS):
        body = _download(url)
    else:
        body = f'{{"status": "ok", "url": "{url}"}}'

    if "-I" in args or "--head" in args:
        body = f"HTTP/1.1 200 OK\nContent-Length: {len(body)}\nContent-Type: text/html"

    output_path = None
    for i, arg in enumerate(args):
        if arg in ("-o", "--output") and i + 1 < len(args):
            output_path = args[i + 1]
        elif arg in ("-O", "--remote-name"):
            output_path = url.rstrip("/").rsplit("/", 1)[-1]
    if output_path is not None:
        fs = write_file(ctx.fs, output_path, body)
        if fs is None:
            return _text(f"curl: (23) Failed writing body to {output_path}")
        return _text("", fs=fs)
    return _text(body)
