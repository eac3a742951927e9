"""Tests for the etcdctl interpreter."""

from __future__ import annotations

from dataclasses import replace

import pytest

from kubequest.cli.etcdctl import check_tls, parse_args, registry
from kubequest.core.filesystem import read_file

TLS = "--cacert=/etc/kubernetes/pki/etcd/ca.crt --cert=/etc/kubernetes/pki/etcd/server.crt --key=/etc/kubernetes/pki/etcd/server.key"


@pytest.fixture
def etcdctl(interpret, cluster, fs):
    """Run an etcdctl line; returns (output, cluster, fs) with unchanged parts carried over."""

    def _etcdctl(line: str, state=None, files=None):
        state = state or cluster
        files = files or fs
        result = interpret(line, state=state, files=files)
        return str(result.output), result.cluster or state, result.fs or files

    return _etcdctl


@pytest.fixture
def corrupted(cluster):
    return replace(cluster, etcd=replace(cluster.etcd, corrupted=True))


class TestTls:
    def test_https_requires_all_flags(self):
        opts = parse_args(["etcdctl", "member", "list", "--cacert=a", "--cert=b"], {})
        assert check_tls(opts) == "Error: etcdserver: request requires TLS client certificates, please provide --key"

    def test_plain_http_needs_nothing(self):
        opts = parse_args(["etcdctl", "member", "list", "--endpoints=http://127.0.0.1:2379"], {})
        assert check_tls(opts) is None

    def test_environment_supplies_flags(self):
        env = {"ETCDCTL_CACERT": "a", "ETCDCTL_CERT": "b", "ETCDCTL_KEY": "c"}
        assert check_tls(parse_args(["etcdctl", "member", "list"], env)) is None

    def test_missing_flags_rejected(self, etcdctl):
        output, _, _ = etcdctl("etcdctl member list")
        assert output.endswith("please provide --cacert")

    def test_flag_values_separate_tokens(self):
        opts = parse_args(["etcdctl", "--cacert", "a", "get", "/registry", "--prefix", "-w", "json"], {})
        assert opts.args == ("get", "/registry")
        assert opts.flag("cacert") == "a"
        assert opts.flag("prefix") == "true"
        assert opts.flag("write-out") == "json"


class TestSnapshot:
    def test_save_then_restore_recovers(self, etcdctl, interpret):
        output, state, files = etcdctl(f"etcdctl snapshot save /tmp/backup.db {TLS}")
        assert output.endswith("Snapshot saved at /tmp/backup.db")
        assert read_file(files, "/tmp/backup.db").startswith("etcd-snapshot")
        assert [b.path for b in state.etcd.backups] == ["/tmp/backup.db"]

        broken = replace(state, etcd=replace(state.etcd, corrupted=True))
        output, healed, _ = etcdctl("etcdctl snapshot restore /tmp/backup.db --data-dir=/var/lib/etcd-new", broken, files)
        assert "restored snapshot" in output
        assert "/var/lib/etcd-new" in output
        assert not healed.etcd.corrupted
        nodes = interpret("kubectl get nodes", state=healed)
        assert "node01" in str(nodes.output)

    def test_save_blocked_while_corrupted(self, etcdctl, corrupted):
        output, state, _ = etcdctl(f"etcdctl snapshot save /tmp/backup.db {TLS}", corrupted)
        assert "Please restore etcd from backup." in output
        assert not state.etcd.backups

    def test_restore_needs_no_tls(self, etcdctl, corrupted):
        output, state, _ = etcdctl("etcdctl snapshot restore /tmp/other.db", corrupted)
        assert "restored snapshot" in output
        assert not state.etcd.corrupted
        assert {m.status for m in state.etcd.members} == {"healthy"}

    def test_save_into_missing_directory(self, etcdctl):
        output, state, _ = etcdctl(f"etcdctl snapshot save /nowhere/backup.db {TLS}")
        assert output.startswith("Error: could not open /nowhere/backup.db.part")
        assert not state.etcd.backups

    def test_status_table(self, etcdctl):
        output, _, _ = etcdctl("etcdctl snapshot status /tmp/backup.db -w table")
        lines = output.splitlines()
        assert lines[0].startswith("+")
        assert "HASH" in lines[1]
        assert "TOTAL SIZE" in lines[1]

    def test_status_is_stable(self, etcdctl):
        first, _, _ = etcdctl("etcdctl snapshot status /tmp/a.db -w simple")
        second, _, _ = etcdctl("etcdctl snapshot status /tmp/a.db -w simple")
        assert first == second
        assert first.count(", ") == 3

    def test_path_required(self, etcdctl):
        output, _, _ = etcdctl(f"etcdctl snapshot save {TLS}")
        assert output == "Error: snapshot save expects one argument"


class TestMembers:
    def test_list(self, etcdctl):
        output, _, _ = etcdctl(f"etcdctl member list {TLS}")
        assert "a1b2c3d4e5f6" in output
        assert "started" in output
        assert "IS LEARNER" in output

    def test_add_and_remove(self, etcdctl):
        output, state, _ = etcdctl(f"etcdctl member add etcd-2 --peer-urls=https://192.168.1.5:2380 {TLS}")
        assert output.startswith("Member ")
        assert 'ETCD_NAME="etcd-2"' in output
        assert len(state.etcd.members) == 2
        added = state.etcd.members[1]
        assert added.client_urls == ("https://192.168.1.5:2379",)

        output, state, _ = etcdctl(f"etcdctl member remove {added.id} {TLS}", state)
        assert output == f"Member {added.id} removed from cluster k8s-quest-etcd-cluster"
        assert len(state.etcd.members) == 1

    def test_remove_leader_promotes(self, etcdctl):
        _, state, _ = etcdctl(f"etcdctl member add etcd-2 --peer-urls=https://192.168.1.5:2380 {TLS}")
        _, state, _ = etcdctl(f"etcdctl member remove a1b2c3d4e5f6 {TLS}", state)
        assert [m.is_leader for m in state.etcd.members] == [True]

    def test_duplicate_name(self, etcdctl):
        output, _, _ = etcdctl(f"etcdctl member add control-plane --peer-urls=https://10.0.0.1:2380 {TLS}")
        assert output == "Error: etcdserver: member name control-plane already exists"

    def test_unknown_member(self, etcdctl):
        output, _, _ = etcdctl(f"etcdctl member remove deadbeef {TLS}")
        assert output == "Error: etcdserver: member not found"


class TestEndpoints:
    def test_health(self, etcdctl):
        output, _, _ = etcdctl(f"etcdctl endpoint health --endpoints=https://192.168.1.2:2379 {TLS}")
        assert output.startswith("https://192.168.1.2:2379 is healthy: successfully committed proposal")

    def test_unhealthy_member(self, etcdctl, cluster):
        sick = replace(cluster.etcd.members[0], status="unhealthy")
        state = replace(cluster, etcd=replace(cluster.etcd, members=(sick,)))
        output, _, _ = etcdctl(f"etcdctl endpoint health --cluster {TLS}", state)
        assert output.splitlines()[-1] == "Error: unhealthy cluster"

    def test_status_table(self, etcdctl):
        output, _, _ = etcdctl(f"etcdctl endpoint status -w table {TLS}")
        assert "IS LEADER" in output
        assert "true" in output


class TestKeys:
    def test_registry_layout(self, cluster):
        keys = registry(cluster)
        assert "/registry/namespaces/default" in keys
        assert "/registry/services/default/kubernetes" in keys
        assert "/registry/nodes/node01" in keys

    def test_get_keys_only(self, etcdctl):
        output, _, _ = etcdctl(f"etcdctl get /registry/nodes --prefix --keys-only {TLS}")
        assert output.splitlines() == [
            "/registry/nodes/control-plane",
            "/registry/nodes/node01",
            "/registry/nodes/node02",
        ]

    def test_del_counts(self, etcdctl):
        output, _, _ = etcdctl(f"etcdctl del /registry/nodes --prefix {TLS}")
        assert output == "3"


def test_version(etcdctl, corrupted):
    output, _, _ = etcdctl("etcdctl version", corrupted)
    assert output == "etcdctl version: 3.5.9\nAPI version: 3.5"


def test_defrag(etcdctl):
    output, state, _ = etcdctl(f"etcdctl defrag {TLS}")
    assert output == "Finished defragmenting etcd member[https://192.168.1.2:2379]"
    assert state.etcd.members[0].db_size == state.etcd.members[0].db_size_in_use
