"""Tests for host administration commands."""

from __future__ import annotations

from dataclasses import replace

import pytest

from kubequest.core.filesystem import read_file, write_file


@pytest.fixture
def host_cmd(interpret, cluster, fs, host):
    """Run a host command; returns (output, result) with the raw CommandResult."""

    def _run(line: str, state=None, files=None, hosts=None):
        result = interpret(line, state=state or cluster, files=files or fs, hosts=hosts or host)
        return str(result.output), result

    return _run


def _component(state, name: str, node: str = "control-plane"):
    return next(c for c in state.system_components if c.name == name and c.node == node)


class TestSystemctl:
    def test_stop_kubelet(self, host_cmd):
        output, result = host_cmd("systemctl stop kubelet")
        assert output == ""
        assert not result.host.unit("kubelet").active
        assert _component(result.cluster, "kubelet").status == "Stopped"
        assert _component(result.cluster, "kubelet", "node01").status == "Running"

    def test_restart_recovers_control_plane(self, host_cmd, cluster):
        failed = replace(
            cluster,
            system_components=tuple(replace(c, status="Failed") for c in cluster.system_components),
        )
        _, result = host_cmd("systemctl restart kubelet", state=failed)
        assert {c.status for c in result.cluster.system_components} == {"Running"}

    def test_restart_while_etcd_corrupted(self, host_cmd, cluster):
        broken = replace(
            cluster,
            etcd=replace(cluster.etcd, corrupted=True),
            system_components=tuple(replace(c, status="Failed") for c in cluster.system_components),
        )
        _, result = host_cmd("systemctl restart kubelet", state=broken)
        assert _component(result.cluster, "kubelet").status == "Running"
        assert _component(result.cluster, "kube-apiserver").status == "Failed"

    def test_status(self, host_cmd):
        output, _ = host_cmd("systemctl status kubelet.service --no-pager")
        lines = output.splitlines()
        assert lines[0] == "● kubelet.service - Kubelet Service"
        assert "active (running)" in lines[2]

    def test_status_is_stable(self, host_cmd):
        first, _ = host_cmd("systemctl status containerd")
        second, _ = host_cmd("systemctl status containerd")
        assert first.splitlines()[3:] == second.splitlines()[3:]

    def test_unknown_unit(self, host_cmd):
        assert host_cmd("systemctl status nope")[0] == "Unit nope.service could not be found."
        assert host_cmd("systemctl start nope")[0] == "Failed to start nope.service: Unit nope.service not found."

    def test_enable(self, host_cmd):
        output, result = host_cmd("systemctl enable --now cri-docker")
        assert output.startswith("Created symlink /etc/systemd/system/multi-user.target.wants/cri-docker.service")
        assert result.host.unit("cri-docker").enabled
        assert result.cluster is None

    def test_is_active(self, host_cmd):
        assert host_cmd("systemctl is-active cri-docker")[0] == "inactive"
        assert host_cmd("systemctl is-active kubelet")[0] == "active"

    def test_list_units(self, host_cmd):
        output, _ = host_cmd("systemctl list-units")
        assert output.splitlines()[0].startswith("UNIT")
        assert "kubelet.service" in output

    def test_bad_verb(self, host_cmd):
        assert host_cmd("systemctl frob kubelet")[0] == "Unknown command verb frob."
        assert host_cmd("systemctl start")[0] == "Too few arguments."


class TestDpkg:
    def test_install_from_file(self, host_cmd, fs):
        files = write_file(fs, "/home/user/cri-dockerd_0.3.9.3.amd64.deb", "binary")
        output, result = host_cmd("dpkg -i cri-dockerd_0.3.9.3.amd64.deb", files=files)
        assert "Setting up cri-dockerd (0.3.9.3) ..." in output
        package = next(p for p in result.host.packages if p.name == "cri-dockerd")
        assert package.version == "0.3.9.3"

    def test_install_missing_archive(self, host_cmd):
        output, _ = host_cmd("dpkg -i missing.deb")
        assert "cannot access archive: No such file or directory" in output

    def test_list_pattern(self, host_cmd):
        output, _ = host_cmd("dpkg -l kube*")
        rows = [line for line in output.splitlines() if line.startswith("ii")]
        assert [row.split()[1] for row in rows] == ["kubeadm", "kubectl", "kubelet"]
        assert host_cmd("dpkg -l nothing")[0] == "dpkg-query: no packages found matching nothing"

    def test_status(self, host_cmd):
        output, _ = host_cmd("dpkg -s kubelet")
        assert "Version: 1.28.0" in output

    def test_remove(self, host_cmd):
        output, result = host_cmd("dpkg -r kubectl")
        assert output == "Removing kubectl ..."
        assert all(p.name != "kubectl" for p in result.host.packages)


class TestSysctl:
    def test_read(self, host_cmd):
        assert host_cmd("sysctl net.ipv4.ip_forward")[0] == "net.ipv4.ip_forward = 1"

    def test_missing_key(self, host_cmd):
        output, _ = host_cmd("sysctl net.nope")
        assert output == "sysctl: cannot stat /proc/sys/net/nope: No such file or directory"

    def test_write(self, host_cmd):
        output, result = host_cmd("sysctl -w vm.swappiness=10")
        assert output == "vm.swappiness = 10"
        assert result.host.sysctl["vm.swappiness"] == "10"

    def test_load_file(self, host_cmd, fs):
        files = write_file(fs, "/etc/sysctl.conf", "# comment\nnet.ipv4.ip_forward = 0\n")
        output, result = host_cmd("sysctl -p", files=files)
        assert output == "net.ipv4.ip_forward = 0"
        assert result.host.sysctl["net.ipv4.ip_forward"] == "0"

    def test_load_missing(self, host_cmd):
        assert host_cmd("sysctl -p /etc/none.conf")[0] == 'sysctl: cannot open "/etc/none.conf": No such file or directory'


class TestDownloads:
    def test_wget_writes_file(self, host_cmd):
        output, result = host_cmd("wget https://example.com/manifests/tigera-operator.yaml")
        assert "saved" in output
        content = read_file(result.fs, "/home/user/tigera-operator.yaml")
        assert "kind: Deployment" in content

    def test_wget_output_name(self, host_cmd):
        _, result = host_cmd("wget -q -O /tmp/cni.yaml https://example.com/kube-flannel.yml")
        assert str(result.output) == ""
        assert read_file(result.fs, "/tmp/cni.yaml").startswith("# Flannel CNI")

    def test_wget_requires_url(self, host_cmd):
        assert host_cmd("wget")[0].startswith("wget: missing URL")

    def test_curl_body(self, host_cmd):
        output, _ = host_cmd("curl http://web.k8snginx.local")
        assert "Welcome to nginx!" in output
        output, _ = host_cmd("curl -I http://web.k8snginx.local")
        assert output.startswith("HTTP/1.1 200 OK")

    def test_curl_output_file(self, host_cmd):
        output, result = host_cmd("curl -o /tmp/out.json https://api.example.com/v1")
        assert output == ""
        assert read_file(result.fs, "/tmp/out.json") == '{"status": "ok", "url": "https://api.example.com/v1"}'
