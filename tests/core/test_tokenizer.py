"""Tests for command-line tokenization."""

from __future__ import annotations

import pytest

from kubequest.core.tokenizer import expand_env_vars, split_flags, tokenize


TESTS = [
    ("kubectl get pods", ["kubectl", "get", "pods"]),
    ("  kubectl   get\tpods  ", ["kubectl", "get", "pods"]),
    ("", []),
    ("   ", []),
    ('echo "hello world"', ["echo", "hello world"]),
    ("echo 'hello world'", ["echo", "hello world"]),
    ("echo pre'fix suffix'", ["echo", "prefix suffix"]),
    ("""echo "it's" """, ["echo", "it's"]),
    ("""echo 'say "hi"'""", ["echo", 'say "hi"']),
    ('echo ""', ["echo", ""]),
    ("kubectl get pods -o=jsonpath='{.items[*].metadata.name}'", ["kubectl", "get", "pods", "-o=jsonpath={.items[*].metadata.name}"]),
    ("kubectl run x --image=busybox -- sh -c 'sleep 10'", ["kubectl", "run", "x", "--image=busybox", "--", "sh", "-c", "sleep 10"]),
    (r"echo a\ b", ["echo", "a b"]),
    (r"echo \'quoted\'", ["echo", "'quoted'"]),
    (r'echo "say \"hi\""', ["echo", 'say "hi"']),
    (r'grep "a\.b"', ["grep", r"a\.b"]),
    (r"echo 'a\ b'", ["echo", r"a\ b"]),
]


@pytest.mark.parametrize("line,expected", TESTS)
def test_tokenize(line: str, expected: list[str]):
    assert tokenize(line) == expected


def test_unterminated_quote_keeps_rest():
    assert tokenize("echo 'abc def") == ["echo", "abc def"]


def test_trailing_backslash_kept():
    assert tokenize("echo a\\") == ["echo", "a\\"]


class TestExpandEnvVars:
    def test_dollar_name(self):
        assert expand_env_vars("echo $HOME", {"HOME": "/home/user"}) == "echo /home/user"

    def test_braced(self):
        assert expand_env_vars("echo ${USER}x", {"USER": "user"}) == "echo userx"

    def test_unknown_left_alone(self):
        assert expand_env_vars("echo $NOPE", {}) == "echo $NOPE"

    def test_several(self):
        env = {"A": "1", "B": "2"}
        assert expand_env_vars("$A-$B", env) == "1-2"


def test_split_flags():
    flags, operands = split_flags(["-n", "5", "--all", "-", "file.txt"])
    assert flags == ["-n", "--all"]
    assert operands == ["5", "-", "file.txt"]
