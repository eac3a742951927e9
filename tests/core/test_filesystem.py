"""Tests for the virtual filesystem."""

from __future__ import annotations

import pytest

from kubequest.core.filesystem import (
    clone_fs,
    create_node,
    delete_node,
    get_node,
    list_dir,
    make_dir,
    normalize_path,
    read_file,
    resolve_path,
    write_file,
)


PATHS = [
    # (current, target, expected)
    ("/home/user", "..", "/home"),
    ("/home/user", "~", "/home/user"),
    ("/tmp", "~/notes.txt", "/home/user/notes.txt"),
    ("/home/user", "/etc//kubernetes/", "/etc/kubernetes"),
    ("/home/user", "./a/./b", "/home/user/a/b"),
    ("/", "../../..", "/"),
    ("/etc/kubernetes", "../hosts", "/etc/hosts"),
    ("/home/user", ".", "/home/user"),
]


@pytest.mark.parametrize("current,target,expected", PATHS)
def test_resolve_path(current: str, target: str, expected: str):
    assert resolve_path(current, target) == expected


def test_normalize_root():
    assert normalize_path("/") == "/"
    assert normalize_path("//") == "/"


class TestInitialTree:
    def test_home_is_current(self, fs):
        assert fs.current_path == "/home/user"
        assert fs.env["HOME"] == "/home/user"

    def test_seed_files(self, fs):
        assert read_file(fs, "/etc/kubernetes/admin.conf") is not None
        assert "kind: Pod" in read_file(fs, "/etc/kubernetes/manifests/example-pod.yaml")
        assert "alias k=kubectl" in read_file(fs, "~/.bashrc")
        assert read_file(fs, "/home/user/.kube/config").startswith("apiVersion: v1")

    def test_directories(self, fs):
        assert get_node(fs, "/tmp").is_dir
        assert get_node(fs, "/root").owner == "root"

    def test_relative_lookup(self, fs):
        assert get_node(fs, ".kube").is_dir

    def test_custom_home(self):
        from kubequest.core.filesystem import initial_filesystem

        fs = initial_filesystem("/srv/admin")
        assert get_node(fs, "/srv/admin/.bashrc") is not None
        assert fs.current_path == "/srv/admin"


class TestWriteFile:
    def test_creates_file(self, fs):
        new = write_file(fs, "notes.txt", "hello")
        assert read_file(new, "/home/user/notes.txt") == "hello"

    def test_leaves_original_untouched(self, fs):
        write_file(fs, "notes.txt", "hello")
        assert get_node(fs, "notes.txt") is None

    def test_overwrite(self, fs):
        fs = write_file(fs, "notes.txt", "one")
        fs = write_file(fs, "notes.txt", "two")
        assert read_file(fs, "notes.txt") == "two"

    def test_append_uses_newline(self, fs):
        fs = write_file(fs, "notes.txt", "one")
        fs = write_file(fs, "notes.txt", "two", append=True)
        assert read_file(fs, "notes.txt") == "one\ntwo"

    def test_append_to_missing_creates(self, fs):
        fs = write_file(fs, "notes.txt", "one", append=True)
        assert read_file(fs, "notes.txt") == "one"

    def test_missing_parent(self, fs):
        assert write_file(fs, "/nope/file.txt", "x") is None

    def test_directory_target(self, fs):
        assert write_file(fs, "/tmp", "x") is None


class TestMutation:
    def test_create_and_delete(self, fs):
        fs = clone_fs(fs)
        assert create_node(fs, "/tmp/work", make_dir(""))
        assert get_node(fs, "/tmp/work").name == "work"
        assert not create_node(fs, "/tmp/work", make_dir(""))
        assert delete_node(fs, "/tmp/work")
        assert get_node(fs, "/tmp/work") is None
        assert not delete_node(fs, "/tmp/work")

    def test_root_has_no_parent(self, fs):
        assert not delete_node(clone_fs(fs), "/")

    def test_clone_is_deep(self, fs):
        copy = clone_fs(fs)
        copy.env["FOO"] = "bar"
        get_node(copy, "/tmp").children.clear()
        assert "FOO" not in fs.env

    def test_list_dir_sorted(self, fs):
        names = [n.name for n in list_dir(fs, "/etc")]
        assert names == sorted(names)
        assert list_dir(fs, "/etc/hosts") is None
