"""Tests for the shell interpreter."""

from __future__ import annotations

import pytest

from kubequest.cli.shell import BLUE, RED, RESET, ShellError, run_filter
from kubequest.core.filesystem import get_node, read_file, write_file
from kubequest.core.outcome import EditorRequest


@pytest.fixture
def shell(interpret, fs):
    """Run a shell line; returns (output, filesystem)."""

    def _shell(line: str, files=None):
        files = files or fs
        result = interpret(line, files=files)
        return str(result.output), result.fs or files

    return _shell


@pytest.fixture
def notes(fs):
    return write_file(fs, "/home/user/notes.txt", "alpha\nbeta\ngamma\nbeta\ndelta")


FILTERS = [
    (["grep", "beta"], "beta\nbeta"),
    (["grep", "-v", "beta"], "alpha\ngamma\ndelta"),
    (["grep", "-c", "a"], "5"),
    (["grep", "-n", "gamma"], "3:gamma"),
    (["grep", "-i", "ALPHA"], "alpha"),
    (["head", "-n", "2"], "alpha\nbeta"),
    (["head", "-2"], "alpha\nbeta"),
    (["tail", "-n1"], "delta"),
    (["wc", "-l"], "5"),
    (["sort"], "alpha\nbeta\nbeta\ndelta\ngamma"),
    (["sort", "-r", "-u"], "gamma\ndelta\nbeta\nalpha"),
    (["uniq"], "alpha\nbeta\ngamma\nbeta\ndelta"),
    (["cut", "-c", "1-2"], "al\nbe\nga\nbe\nde"),
    (["awk", "{print $1}"], "alpha\nbeta\ngamma\nbeta\ndelta"),
]


@pytest.mark.parametrize("tokens,expected", FILTERS)
def test_filters(tokens, expected):
    assert run_filter(tokens, "alpha\nbeta\ngamma\nbeta\ndelta") == expected


class TestFilters:
    def test_uniq_count(self):
        assert run_filter(["uniq", "-c"], "a\na\nb") == "      2 a\n      1 b"

    def test_sort_numeric(self):
        assert run_filter(["sort", "-n"], "10\n9\n100") == "9\n10\n100"

    def test_cut_fields(self):
        assert run_filter(["cut", "-d", ":", "-f", "1,3"], "a:b:c\nplain") == "a:c\nplain"

    def test_awk_separator(self):
        assert run_filter(["awk", "-F:", "{print $2, $NF}"], "a:b:c") == "b c"

    def test_base64_round_trip(self):
        encoded = run_filter(["base64"], "admin")
        assert encoded == "YWRtaW4K"
        assert run_filter(["base64", "-d"], encoded) == "admin"

    def test_base64_unterminated_input(self):
        encoded = run_filter(["base64"], "admin", terminated=False)
        assert encoded == "YWRtaW4="
        assert run_filter(["base64", "-d"], encoded) == "admin"

    def test_base64_missing_file(self, shell):
        output, _ = shell("base64 -d missing.txt")
        assert output == "base64: missing.txt: No such file or directory"

    def test_wc_counts(self):
        assert run_filter(["wc"], "one two\nthree") == "      2       3      13"

    def test_unsupported_stage(self):
        with pytest.raises(ShellError, match="ls: unsupported in a pipeline"):
            run_filter(["ls"], "text")


class TestFiles:
    def test_grep_highlights_file_matches(self, shell, notes):
        output, _ = shell("grep gam notes.txt", notes)
        assert output == f"{RED}gam{RESET}ma"

    def test_grep_missing_file(self, shell):
        output, _ = shell("grep x nope.txt")
        assert output == "grep: nope.txt: No such file or directory"

    def test_head_file(self, shell, notes):
        output, _ = shell("head -n 1 notes.txt", notes)
        assert output == "alpha"

    def test_wc_names_file(self, shell, notes):
        output, _ = shell("wc -l notes.txt", notes)
        assert output == "5 notes.txt"

    def test_cat(self, shell, notes):
        output, _ = shell("cat notes.txt", notes)
        assert output.startswith("alpha\nbeta")
        output, _ = shell("cat -n notes.txt", notes)
        assert output.splitlines()[0] == "     1\talpha"

    def test_cat_errors(self, shell):
        assert shell("cat")[0] == "cat: missing file operand"
        assert shell("cat /etc")[0] == "cat: /etc: Is a directory"

    def test_touch_and_mkdir(self, shell):
        _, fs = shell("mkdir -p work/a/b")
        _, fs = shell("touch work/a/b/file.txt", fs)
        assert read_file(fs, "/home/user/work/a/b/file.txt") == ""
        output, _ = shell("mkdir work", fs)
        assert output == "mkdir: cannot create directory 'work': File exists"

    def test_mkdir_missing_parent(self, shell):
        output, _ = shell("mkdir x/y")
        assert output == "mkdir: cannot create directory 'x/y': No such file or directory"

    def test_rm(self, shell, notes):
        output, fs = shell("rm notes.txt", notes)
        assert output == ""
        assert get_node(fs, "/home/user/notes.txt") is None
        assert shell("rm /etc")[0] == "rm: cannot remove '/etc': Is a directory"
        assert shell("rm -f ghost")[0] == ""

    def test_rm_root_refused(self, shell):
        output, fs = shell("rm -rf /")
        assert output == "rm: it is dangerous to operate recursively on '/'"
        assert get_node(fs, "/etc") is not None

    def test_cp_into_directory(self, shell, notes):
        _, fs = shell("cp notes.txt /tmp", notes)
        assert read_file(fs, "/tmp/notes.txt").startswith("alpha")
        assert get_node(fs, "/home/user/notes.txt") is not None

    def test_cp_directory_needs_recursive(self, shell):
        output, _ = shell("cp /etc /tmp/etc")
        assert output == "cp: -r not specified; omitting directory '/etc'"

    def test_mv_renames(self, shell, notes):
        _, fs = shell("mv notes.txt todo.txt", notes)
        assert get_node(fs, "/home/user/notes.txt") is None
        assert read_file(fs, "/home/user/todo.txt").startswith("alpha")

    def test_mv_into_itself(self, shell):
        output, _ = shell("mv /etc /etc/sub")
        assert output == "mv: cannot move '/etc' to a subdirectory of itself"

    def test_original_untouched(self, shell, fs):
        shell("touch new.txt")
        assert get_node(fs, "/home/user/new.txt") is None


class TestNavigation:
    def test_cd_and_pwd(self, shell):
        _, fs = shell("cd /etc/kubernetes")
        assert shell("pwd", fs)[0] == "/etc/kubernetes"
        _, fs = shell("cd -", fs)
        assert fs.current_path == "/home/user"

    def test_cd_home(self, shell):
        _, fs = shell("cd /tmp")
        _, fs = shell("cd", fs)
        assert fs.current_path == "/home/user"

    def test_cd_errors(self, shell):
        assert shell("cd /nope")[0] == "cd: /nope: No such file or directory"
        assert shell("cd /etc/hosts")[0] == "cd: /etc/hosts: Not a directory"

    def test_ls_colours_directories(self, shell):
        output, _ = shell("ls /etc")
        assert f"{BLUE}kubernetes{RESET}" in output
        assert "hosts" in output

    def test_ls_hides_dotfiles(self, shell):
        assert ".bashrc" not in shell("ls")[0]
        assert ".bashrc" in shell("ls -a")[0]

    def test_ls_long(self, shell):
        output, _ = shell("ls -l /etc/kubernetes")
        lines = output.splitlines()
        assert lines[0] == "total 2"
        assert lines[1].startswith("-")
        assert lines[1].endswith("admin.conf")

    def test_ls_missing(self, shell):
        assert shell("ls /nope")[0] == "ls: cannot access '/nope': No such file or directory"

    def test_tree(self, shell):
        output, _ = shell("tree /etc/kubernetes")
        lines = output.splitlines()
        assert lines[0] == "/etc/kubernetes"
        assert lines[1] == "├── admin.conf"
        assert lines[-1] == "1 directories, 3 files"


class TestEnvironment:
    def test_export_and_env(self, shell):
        _, fs = shell("export APP=web")
        assert fs.env["APP"] == "web"
        assert shell("printenv APP", fs)[0] == "web"
        _, fs = shell("unset APP", fs)
        assert "APP" not in fs.env

    def test_export_invalid(self, shell):
        assert shell("export 1X=2")[0] == "export: `1X=2': not a valid identifier"

    def test_echo(self, shell):
        assert shell("echo hello world")[0] == "hello world"
        assert shell("echo -e 'a\\nb'")[0] == "a\nb"


class TestSession:
    def test_editor_request(self, interpret):
        result = interpret("vim /etc/hosts")
        assert isinstance(result.output, EditorRequest)
        assert result.output.file_path == "/etc/hosts"
        assert not result.output.is_new
        assert result.output.content.startswith("127.0.0.1")

    def test_editor_new_file(self, interpret):
        result = interpret("nano draft.yaml")
        assert result.output == EditorRequest("/home/user/draft.yaml", "", True)

    def test_editor_on_directory(self, shell):
        assert shell("vi /etc")[0] == "vi: /etc is a directory"

    def test_which(self, shell):
        assert shell("which kubectl")[0] == "/usr/local/bin/kubectl"
        assert shell("which nope")[0].startswith("which: no nope in (")

    def test_sudo_runs_command(self, interpret):
        result = interpret("sudo kubectl get ns")
        assert "kube-system" in str(result.output)

    def test_sudo_root_shell(self, shell):
        output, fs = shell("sudo -i")
        assert output == "root@k8s-quest:~#"
        assert fs.current_path == "/root"
        assert shell("whoami", fs)[0] == "root"

    def test_sudo_unknown(self, shell):
        assert shell("sudo frob")[0] == "sudo: frob: command not found"

    def test_uname(self, shell):
        assert shell("uname")[0] == "Linux"
        assert shell("uname -r")[0] == "5.15.0-k8s"

    def test_help(self, shell):
        assert shell("help")[0].startswith("K8s Quest - available commands:")
