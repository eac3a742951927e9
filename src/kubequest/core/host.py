"""
Host-level state: the control-plane machine the user is logged into.

Systemd units, kernel parameters, installed packages and helm's client
state live here rather than in the cluster. HostState is frozen like
ClusterState; the with_* helpers return updated copies, so two Simulator
instances never share a unit table or a repository list.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class Unit:
    """A systemd service unit."""

    name: str
    active: bool = True
    enabled: bool = True


@dataclass(frozen=True)
class Package:
    name: str
    version: str
    description: str
    architecture: str = "amd64"


@dataclass(frozen=True)
class HelmRelease:
    name: str
    namespace: str
    chart: str  # e.g. nginx-15.0.0
    app_version: str
    revision: int = 1
    status: str = "deployed"
    updated: str = ""


DEFAULT_UNITS = (
    Unit("kubelet"),
    Unit("docker"),
    Unit("containerd"),
    Unit("cri-docker", active=False, enabled=False),
    Unit("etcd"),
)

DEFAULT_SYSCTL = {
    "net.bridge.bridge-nf-call-iptables": "1",
    "net.ipv6.conf.all.forwarding": "1",
    "net.ipv4.ip_forward": "1",
    "net.netfilter.nf_conntrack_max": "131072",
    "kernel.hostname": "k8s-node",
    "vm.swappiness": "0",
}

DEFAULT_PACKAGES = (
    Package("apt", "2.4.8", "commandline package manager"),
    Package("bash", "5.1-6", "GNU Bourne Again SHell"),
    Package("containerd", "1.6.0", "container runtime"),
    Package("cri-dockerd", "0.3.6.3", "CRI for Docker"),
    Package("docker.io", "24.0.5", "Docker container runtime"),
    Package("kubelet", "1.28.0", "Kubernetes node agent"),
    Package("kubeadm", "1.28.0", "Kubernetes admin tool"),
    Package("kubectl", "1.28.0", "Kubernetes CLI"),
)

DEFAULT_HELM_REPOS = {
    "stable": "https://charts.helm.sh/stable",
    "bitnami": "https://charts.bitnami.com/bitnami",
}


@dataclass(frozen=True)
class HostState:
    units: tuple[Unit, ...] = DEFAULT_UNITS
    sysctl: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SYSCTL))
    packages: tuple[Package, ...] = DEFAULT_PACKAGES
    helm_repos: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HELM_REPOS))
    helm_releases: tuple[HelmRelease, ...] = ()

    def unit(self, name: str) -> Unit | None:
        name = name.removesuffix(".service")
        return next((u for u in self.units if u.name == name), None)

    def with_unit(self, unit: Unit) -> HostState:
        if self.unit(unit.name) is None:
            return replace(self, units=self.units + (unit,))
        return replace(self, units=tuple(unit if u.name == unit.name else u for u in self.units))

    def with_sysctl(self, key: str, value: str) -> HostState:
        return replace(self, sysctl={**self.sysctl, key: value})

    def with_package(self, package: Package) -> HostState:
        kept = tuple(p for p in self.packages if p.name != package.name)
        return replace(self, packages=kept + (package,))

    def with_repo(self, name: str, url: str) -> HostState:
        return replace(self, helm_repos={**self.helm_repos, name: url})

    def without_repo(self, name: str) -> HostState:
        return replace(self, helm_repos={k: v for k, v in self.helm_repos.items() if k != name})

    def release(self, name: str, namespace: str) -> HelmRelease | None:
        return next(
            (r for r in self.helm_releases if r.name == name and r.namespace == namespace),
            None,
        )

    def with_release(self, release: HelmRelease) -> HostState:
        kept = tuple(
            r for r in self.helm_releases
            if not (r.name == release.name and r.namespace == release.namespace)
        )
        return replace(self, helm_releases=kept + (release,))

    def without_release(self, name: str, namespace: str) -> HostState:
        return replace(
            self,
            helm_releases=tuple(
                r for r in self.helm_releases if not (r.name == name and r.namespace == namespace)
            ),
        )
