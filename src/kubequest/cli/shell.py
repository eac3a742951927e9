"""
Shell interpreter.

Unix-like commands against the virtual filesystem. Text commands (grep,
head, tail, wc, sort, uniq, base64, cut, awk) are built as filters over a
string so the Simulator can run the same code as pipeline stages.
"""

from __future__ import annotations

import base64
import binascii
import re
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from kubequest.cli import CommandContext, CommandResult
from kubequest.core import config
from kubequest.core.errors import SimulatorError
from kubequest.core.filesystem import (
    FileNode,
    FileSystem,
    clone_fs,
    clone_node,
    create_node,
    delete_node,
    get_node,
    list_dir,
    make_dir,
    make_file,
    resolve,
)
from kubequest.core.outcome import EditorRequest, Text
from kubequest.core.tokenizer import split_flags

BLUE = "\x1b[1;34m"
RED = "\x1b[1;31m"
YELLOW = "\x1b[1;33m"
RESET = "\x1b[0m"
CLEAR_SCREEN = "\x1b[2J\x1b[0;0H"

HOSTNAME = "k8s-quest"
UNAME = "Linux k8s-quest 5.15.0-k8s #1 SMP x86_64 GNU/Linux"

WHICH = {
    "kubectl": "/usr/local/bin/kubectl",
    "etcdctl": "/usr/local/bin/etcdctl",
    "helm": "/usr/local/bin/helm",
    "ls": "/bin/ls",
    "cat": "/bin/cat",
    "cd": "shell built-in",
    "vim": "/usr/bin/vim",
    "vi": "/usr/bin/vi",
    "nano": "/usr/bin/nano",
    "grep": "/bin/grep",
    "bash": "/bin/bash",
    "systemctl": "/usr/bin/systemctl",
    "curl": "/usr/bin/curl",
    "wget": "/usr/bin/wget",
}

EDITORS = frozenset({"vim", "vi", "nano"})

_Handler = Callable[[CommandContext, list[str]], CommandResult]
_BUILTINS: dict[str, _Handler] = {}


def builtin(*names: str) -> Callable[[_Handler], _Handler]:
    def register(func: _Handler) -> _Handler:
        for name in names:
            _BUILTINS[name] = func
        return func

    return register


class ShellError(SimulatorError):
    pass


def _text(output: str, fs: FileSystem | None = None) -> CommandResult:
    return CommandResult(Text(output), fs=fs)


# === Text filters ===


@dataclass(frozen=True)
class Filter:
    """A parsed text command: how to transform input, and the files it names."""

    apply: Callable[[str], str]
    files: list[str]


def _lines(text: str) -> list[str]:
    return text.split("\n") if text else []


def _count_option(args: list[str], default: int = 10) -> tuple[int, list[str]]:
    """Pull `-n N`, `-nN`, `--lines=N` or `-N` out of args."""
    count = default
    rest = []
    i = 0
    while i < len(args):
        arg = args[i]
        value = None
        if arg == "-n" and i + 1 < len(args):
            value = args[i + 1]
            i += 1
        elif arg.startswith("--lines="):
            value = arg.split("=", 1)[1]
        elif arg.startswith("-n") and len(arg) > 2:
            value = arg[2:]
        elif re.fullmatch(r"-\d+", arg):
            value = arg[1:]
        else:
            rest.append(arg)
        if value is not None:
            if not value.lstrip("+-").isdigit():
                raise ShellError(f"invalid number of lines: '{value}'")
            count = abs(int(value))
        i += 1
    return count, rest


def grep_filter(args: list[str], highlight: bool = False) -> Filter:
    flags, operands = split_flags(args)
    if not operands:
        raise ShellError("Usage: grep [OPTION]... PATTERNS [FILE]...")
    options = "".join(f.lstrip("-") for f in flags if not f.startswith("--"))
    long_options = {f for f in flags if f.startswith("--")}
    ignore_case = "i" in options or "--ignore-case" in long_options
    invert = "v" in options or "--invert-match" in long_options
    numbered = "n" in options
    count_only = "c" in options
    pattern = operands[0]
    matcher = re.compile(re.escape(pattern), re.IGNORECASE if ignore_case else 0)

    def apply(text: str) -> str:
        hits = [
            (number, line)
            for number, line in enumerate(_lines(text), 1)
            if bool(matcher.search(line)) != invert
        ]
        if count_only:
            return str(len(hits))
        out = []
        for number, line in hits:
            if highlight and not invert:
                line = matcher.sub(lambda m: f"{RED}{m.group(0)}{RESET}", line)
            out.append(f"{number}:{line}" if numbered else line)
        return "\n".join(out)

    return Filter(apply, operands[1:])


def head_filter(args: list[str]) -> Filter:
    count, rest = _count_option(args)
    return Filter(lambda text: "\n".join(_lines(text)[:count]), split_flags(rest)[1])


def tail_filter(args: list[str]) -> Filter:
    count, rest = _count_option(args)
    return Filter(
        lambda text: "\n".join(_lines(text)[-count:] if count else []),
        split_flags(rest)[1],
    )


def wc_filter(args: list[str]) -> Filter:
    flags, files = split_flags(args)
    options = "".join(f.lstrip("-") for f in flags)

    def apply(text: str) -> str:
        counts = {
            "l": len(text.splitlines()),
            "w": len(text.split()),
            "c": len(text.encode()),
        }
        picked = [counts[o] for o in "lwc" if o in options] or list(counts.values())
        if len(picked) == 1:
            return str(picked[0])
        return " ".join(f"{n:>7}" for n in picked)

    return Filter(apply, files)


def sort_filter(args: list[str]) -> Filter:
    flags, files = split_flags(args)
    options = "".join(f.lstrip("-") for f in flags)

    def key(line: str):
        if "n" in options:
            match = re.match(r"\s*(-?\d+(?:\.\d+)?)", line)
            return (0, float(match.group(1)), line) if match else (-1, 0.0, line)
        return (0, 0.0, line)

    def apply(text: str) -> str:
        lines = sorted(_lines(text), key=key, reverse="r" in options)
        if "u" in options:
            lines = list(dict.fromkeys(lines))
        return "\n".join(lines)

    return Filter(apply, files)


def uniq_filter(args: list[str]) -> Filter:
    flags, files = split_flags(args)
    counted = "-c" in flags

    def apply(text: str) -> str:
        groups: list[list] = []
        for line in _lines(text):
            if groups and groups[-1][0] == line:
                groups[-1][1] += 1
            else:
                groups.append([line, 1])
        if counted:
            return "\n".join(f"{n:>7} {line}" for line, n in groups)
        return "\n".join(line for line, _ in groups)

    return Filter(apply, files)


def base64_filter(args: list[str], terminated: bool = True) -> Filter:
    """`terminated` says the input ends a line, as command output and files do."""
    flags, files = split_flags(args)
    decode = "-d" in flags or "--decode" in flags

    def apply(text: str) -> str:
        if decode:
            try:
                data = base64.b64decode("".join(text.split()), validate=True).decode(errors="replace")
            except (binascii.Error, ValueError):
                raise ShellError("base64: invalid input") from None
            return data[:-1] if data.endswith("\n") else data
        if terminated and text and not text.endswith("\n"):
            text += "\n"
        return base64.b64encode(text.encode()).decode()

    return Filter(apply, files)


def cut_filter(args: list[str]) -> Filter:
    delimiter = "\t"
    fields = None
    chars = None
    files = []
    i = 0
    while i < len(args):
        arg = args[i]
        for short, long in (("-d", "--delimiter="), ("-f", "--fields="), ("-c", "--characters=")):
            if arg == short and i + 1 < len(args):
                value = args[i + 1]
                i += 1
            elif arg.startswith(long):
                value = arg[len(long):]
            elif arg.startswith(short) and len(arg) > 2:
                value = arg[2:]
            else:
                continue
            if short == "-d":
                delimiter = value
            elif short == "-f":
                fields = _ranges(value)
            else:
                chars = _ranges(value)
            break
        else:
            files.append(arg)
        i += 1
    if fields is None and chars is None:
        raise ShellError("cut: you must specify a list of bytes, characters, or fields")

    def apply(text: str) -> str:
        out = []
        for line in _lines(text):
            if chars is not None:
                out.append("".join(c for n, c in enumerate(line, 1) if n in chars))
            elif delimiter not in line:
                out.append(line)
            else:
                parts = line.split(delimiter)
                out.append(delimiter.join(p for n, p in enumerate(parts, 1) if n in fields))
        return "\n".join(out)

    return Filter(apply, files)


def _ranges(spec: str) -> frozenset[int]:
    picked = set()
    for part in spec.split(","):
        low, sep, high = part.partition("-")
        try:
            if not sep:
                picked.add(int(low))
            else:
                picked.update(range(int(low or 1), int(high or 1024) + 1))
        except ValueError:
            raise ShellError(f"cut: invalid field value '{part}'") from None
    return frozenset(picked)


_AWK_PRINT = re.compile(r"^\s*\{\s*print\s*(.*?)\s*;?\s*\}\s*$")


def awk_filter(args: list[str]) -> Filter:
    separator = None
    operands = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "-F" and i + 1 < len(args):
            separator = args[i + 1]
            i += 1
        elif arg.startswith("-F"):
            separator = arg[2:]
        else:
            operands.append(arg)
        i += 1
    if not operands:
        raise ShellError("usage: awk [-F fs] 'prog' [file ...]")
    match = _AWK_PRINT.match(operands[0])
    if match is None:
        raise ShellError(f"awk: unsupported program '{operands[0]}'")
    terms = [t.strip() for t in match.group(1).split(",") if t.strip()] or ["$0"]

    def field(line: str, parts: list[str], term: str) -> str:
        if term == "$0":
            return line
        if term == "$NF":
            return parts[-1] if parts else ""
        if re.fullmatch(r"\$\d+", term):
            index = int(term[1:])
            return parts[index - 1] if index <= len(parts) else ""
        if len(term) >= 2 and term[0] == term[-1] == '"':
            return term[1:-1]
        raise ShellError(f"awk: unsupported expression '{term}'")

    def apply(text: str) -> str:
        out = []
        for line in _lines(text):
            parts = line.split(separator) if separator else line.split()
            out.append(" ".join(field(line, parts, t) for t in terms))
        return "\n".join(out)

    return Filter(apply, operands[1:])


FILTERS: dict[str, Callable[[list[str]], Filter]] = {
    "grep": grep_filter,
    "head": head_filter,
    "tail": tail_filter,
    "wc": wc_filter,
    "sort": sort_filter,
    "uniq": uniq_filter,
    "base64": base64_filter,
    "cut": cut_filter,
    "awk": awk_filter,
}


def run_filter(tokens: list[str], text: str, terminated: bool = True) -> str:
    """Run one pipeline stage over text. Files named by the stage are ignored.

    `terminated` is False when the upstream output stopped mid-line.
    """
    name = tokens[0]
    factory = FILTERS.get(name)
    if factory is None:
        raise ShellError(f"{name}: unsupported in a pipeline")
    if name == "base64":
        return base64_filter(tokens[1:], terminated).apply(text)
    return factory(tokens[1:]).apply(text)


@builtin(*FILTERS)
def _file_filter(ctx: CommandContext, args: list[str]) -> CommandResult:
    name = ctx.tokens[0]
    parsed = grep_filter(args, highlight=True) if name == "grep" else FILTERS[name](args)
    if not parsed.files:
        raise ShellError(f"{name}: missing file operand")
    outputs = []
    for path in parsed.files:
        node = get_node(ctx.fs, path)
        if node is None:
            outputs.append(f"{name}: {path}: No such file or directory")
        elif node.is_dir:
            outputs.append(f"{name}: {path}: Is a directory")
        else:
            result = parsed.apply(node.content)
            if name == "grep" and len(parsed.files) > 1:
                result = "\n".join(f"{path}:{line}" for line in _lines(result))
            elif name == "wc":
                result = f"{result} {path}"
            outputs.append(result)
    return _text("\n".join(o for o in outputs if o))


# === Navigation and listing ===


def _mtime(node: FileNode) -> str:
    try:
        stamp = datetime.strptime(node.modified_at, "%Y-%m-%dT%H:%M:%SZ")
    except ValueError:
        stamp = datetime.now(timezone.utc)
    return f"{stamp:%b} {stamp.day:>2} {stamp:%H:%M}"


def _display(node: FileNode, name: str | None = None) -> str:
    name = name if name is not None else node.name
    return f"{BLUE}{name}{RESET}" if node.is_dir else name


def _long_entry(node: FileNode, name: str | None = None) -> str:
    size = len(node.content) if not node.is_dir else 4096
    return (
        f"{node.permissions} 1 {node.owner} {node.owner} {size:>5} {_mtime(node)} "
        f"{_display(node, name)}"
    )


@builtin("ls")
def _ls(ctx: CommandContext, args: list[str]) -> CommandResult:
    flags, paths = split_flags(args)
    options = "".join(f.lstrip("-") for f in flags)
    show_all = "a" in options or "--all" in flags
    long_format = "l" in options
    outputs = []
    for target in paths or ["."]:
        node = get_node(ctx.fs, target)
        if node is None:
            outputs.append(f"ls: cannot access '{target}': No such file or directory")
            continue
        if not node.is_dir:
            outputs.append(_long_entry(node) if long_format else node.name)
            continue
        entries = [n for n in list_dir(ctx.fs, target) if show_all or not n.name.startswith(".")]
        listing = []
        if long_format:
            listing.append(f"total {len(entries)}")
            if show_all:
                listing += [_long_entry(node, "."), _long_entry(node, "..")]
            listing += [_long_entry(n) for n in entries]
            body = "\n".join(listing)
        else:
            body = "  ".join(_display(n) for n in entries)
        outputs.append(f"{target}:\n{body}" if len(paths) > 1 else body)
    return _text("\n".join(outputs))


@builtin("cd")
def _cd(ctx: CommandContext, args: list[str]) -> CommandResult:
    target = args[0] if args else ctx.fs.home
    if target == "-":
        target = ctx.fs.env.get("OLDPWD", ctx.fs.current_path)
    node = get_node(ctx.fs, target)
    if node is None:
        raise ShellError(f"cd: {target}: No such file or directory")
    if not node.is_dir:
        raise ShellError(f"cd: {target}: Not a directory")
    env = {**ctx.fs.env, "OLDPWD": ctx.fs.current_path}
    return _text("", replace(ctx.fs, current_path=resolve(ctx.fs, target), env=env))


@builtin("pwd")
def _pwd(ctx: CommandContext, args: list[str]) -> CommandResult:
    return _text(ctx.fs.current_path)


@builtin("tree")
def _tree(ctx: CommandContext, args: list[str]) -> CommandResult:
    flags, paths = split_flags(args)
    target = paths[0] if paths else "."
    show_all = "-a" in flags
    node = get_node(ctx.fs, target)
    if node is None:
        return _text(f"{target} [error opening dir]\n\n0 directories, 0 files")
    if not node.is_dir:
        return _text(f"{target}\n\n0 directories, 1 file")

    lines = [target]
    counts = {"dirs": 0, "files": 0}

    def walk(directory: FileNode, prefix: str) -> None:
        entries = sorted(
            (c for c in directory.children.values() if show_all or not c.name.startswith(".")),
            key=lambda c: c.name,
        )
        for i, child in enumerate(entries):
            last = i == len(entries) - 1
            lines.append(f"{prefix}{'└── ' if last else '├── '}{_display(child)}")
            if child.is_dir:
                counts["dirs"] += 1
                walk(child, prefix + ("    " if last else "│   "))
            else:
                counts["files"] += 1

    walk(node, "")
    lines.append(f"\n{counts['dirs']} directories, {counts['files']} files")
    return _text("\n".join(lines))


# === File manipulation ===


@builtin("cat")
def _cat(ctx: CommandContext, args: list[str]) -> CommandResult:
    flags, paths = split_flags(args)
    if not paths:
        raise ShellError("cat: missing file operand")
    outputs = []
    for path in paths:
        node = get_node(ctx.fs, path)
        if node is None:
            outputs.append(f"cat: {path}: No such file or directory")
        elif node.is_dir:
            outputs.append(f"cat: {path}: Is a directory")
        elif "-n" in flags:
            outputs.append("\n".join(f"{n:>6}\t{line}" for n, line in enumerate(_lines(node.content), 1)))
        else:
            outputs.append(node.content)
    return _text("\n".join(outputs))


@builtin("mkdir")
def _mkdir(ctx: CommandContext, args: list[str]) -> CommandResult:
    flags, paths = split_flags(args)
    if not paths:
        raise ShellError("mkdir: missing operand")
    parents = "-p" in flags or "--parents" in flags
    fs = clone_fs(ctx.fs)
    errors = []
    for path in paths:
        if get_node(fs, path) is not None:
            if not parents:
                errors.append(f"mkdir: cannot create directory '{path}': File exists")
            continue
        if parents:
            current = ""
            for part in filter(None, resolve(fs, path).split("/")):
                current += "/" + part
                if get_node(fs, current) is None:
                    create_node(fs, current, make_dir(part))
        elif not create_node(fs, path, make_dir("")):
            errors.append(f"mkdir: cannot create directory '{path}': No such file or directory")
    return _text("\n".join(errors), fs)


@builtin("touch")
def _touch(ctx: CommandContext, args: list[str]) -> CommandResult:
    _, paths = split_flags(args)
    if not paths:
        raise ShellError("touch: missing file operand")
    fs = clone_fs(ctx.fs)
    errors = []
    for path in paths:
        node = get_node(fs, path)
        if node is not None:
            node.modified_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        elif not create_node(fs, path, make_file("")):
            errors.append(f"touch: cannot touch '{path}': No such file or directory")
    return _text("\n".join(errors), fs)


@builtin("rm")
def _rm(ctx: CommandContext, args: list[str]) -> CommandResult:
    flags, paths = split_flags(args)
    options = "".join(f.lstrip("-") for f in flags)
    recursive = "r" in options or "R" in options or "--recursive" in flags
    force = "f" in options or "--force" in flags
    if not paths:
        if force:
            return _text("")
        raise ShellError("rm: missing operand")
    fs = clone_fs(ctx.fs)
    errors = []
    for path in paths:
        node = get_node(fs, path)
        if node is None:
            if not force:
                errors.append(f"rm: cannot remove '{path}': No such file or directory")
            continue
        if node.is_dir and not recursive:
            errors.append(f"rm: cannot remove '{path}': Is a directory")
            continue
        if resolve(fs, path) == "/":
            errors.append("rm: it is dangerous to operate recursively on '/'")
            continue
        delete_node(fs, path)
    return _text("\n".join(errors), fs)


def _place(fs: FileSystem, node: FileNode, dest: str) -> bool:
    """Put node at dest, or inside dest when dest is a directory."""
    target = get_node(fs, dest)
    if target is not None and target.is_dir:
        copied = clone_node(node)
        target.children[copied.name] = copied
        return True
    if target is not None:
        delete_node(fs, dest)
    return create_node(fs, dest, clone_node(node))


@builtin("cp")
def _cp(ctx: CommandContext, args: list[str]) -> CommandResult:
    flags, paths = split_flags(args)
    options = "".join(f.lstrip("-") for f in flags)
    recursive = "r" in options or "R" in options or "a" in options
    if len(paths) < 2:
        raise ShellError("cp: missing destination file operand")
    source, dest = paths[0], paths[-1]
    node = get_node(ctx.fs, source)
    if node is None:
        raise ShellError(f"cp: cannot stat '{source}': No such file or directory")
    if node.is_dir and not recursive:
        raise ShellError(f"cp: -r not specified; omitting directory '{source}'")
    fs = clone_fs(ctx.fs)
    if not _place(fs, node, dest):
        raise ShellError(f"cp: cannot create regular file '{dest}': No such file or directory")
    return _text("", fs)


@builtin("mv")
def _mv(ctx: CommandContext, args: list[str]) -> CommandResult:
    _, paths = split_flags(args)
    if len(paths) < 2:
        raise ShellError("mv: missing destination file operand")
    source, dest = paths[0], paths[-1]
    node = get_node(ctx.fs, source)
    if node is None:
        raise ShellError(f"mv: cannot stat '{source}': No such file or directory")
    if resolve(ctx.fs, dest).startswith(resolve(ctx.fs, source) + "/"):
        raise ShellError(f"mv: cannot move '{source}' to a subdirectory of itself")
    fs = clone_fs(ctx.fs)
    delete_node(fs, source)
    if not _place(fs, node, dest):
        raise ShellError(f"mv: cannot move '{source}' to '{dest}': No such file or directory")
    return _text("", fs)


@builtin("echo")
def _echo(ctx: CommandContext, args: list[str]) -> CommandResult:
    escapes = False
    newline = True
    while args and args[0] in ("-n", "-e"):
        escapes = escapes or args[0] == "-e"
        newline = newline and args[0] != "-n"
        args = args[1:]
    text = " ".join(args)
    if escapes:
        text = text.replace("\\n", "\n").replace("\\t", "\t")
    return CommandResult(Text(text, newline))


@builtin(*EDITORS)
def _edit(ctx: CommandContext, args: list[str]) -> CommandResult:
    _, paths = split_flags(args)
    name = ctx.tokens[0]
    if not paths:
        raise ShellError(f"{name}: missing file argument")
    path = resolve(ctx.fs, paths[0])
    node = get_node(ctx.fs, path)
    if node is not None and node.is_dir:
        raise ShellError(f"{name}: {paths[0]} is a directory")
    config.log("debug", "editor_open", path=path, new=node is None)
    return CommandResult(EditorRequest(path, node.content if node else "", node is None))


# === Environment ===

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@builtin("export")
def _export(ctx: CommandContext, args: list[str]) -> CommandResult:
    if not args or args == ["-p"]:
        return _text("\n".join(f'declare -x {k}="{v}"' for k, v in sorted(ctx.fs.env.items())))
    env = dict(ctx.fs.env)
    for arg in args:
        name, sep, value = arg.partition("=")
        if not _IDENTIFIER.match(name):
            raise ShellError(f"export: `{arg}': not a valid identifier")
        if sep:
            env[name] = value
        else:
            env.setdefault(name, "")
    return _text("", replace(ctx.fs, env=env))


@builtin("env", "printenv")
def _env(ctx: CommandContext, args: list[str]) -> CommandResult:
    if args:
        return _text("\n".join(ctx.fs.env[a] for a in args if a in ctx.fs.env))
    return _text("\n".join(f"{k}={v}" for k, v in ctx.fs.env.items()))


@builtin("unset")
def _unset(ctx: CommandContext, args: list[str]) -> CommandResult:
    if not args:
        return _text("")
    env = {k: v for k, v in ctx.fs.env.items() if k not in args}
    return _text("", replace(ctx.fs, env=env))


# === Session ===


@builtin("whoami")
def _whoami(ctx: CommandContext, args: list[str]) -> CommandResult:
    return _text("root" if ctx.fs.current_path.startswith("/root") else ctx.fs.env.get("USER", "user"))


@builtin("hostname")
def _hostname(ctx: CommandContext, args: list[str]) -> CommandResult:
    return _text(HOSTNAME)


@builtin("date")
def _date(ctx: CommandContext, args: list[str]) -> CommandResult:
    return _text(datetime.now(timezone.utc).strftime("%a %b %d %H:%M:%S UTC %Y"))


@builtin("uname")
def _uname(ctx: CommandContext, args: list[str]) -> CommandResult:
    if "-r" in args:
        return _text("5.15.0-k8s")
    if "-a" in args:
        return _text(UNAME)
    return _text("Linux")


@builtin("which")
def _which(ctx: CommandContext, args: list[str]) -> CommandResult:
    lines = []
    for name in args:
        lines.append(WHICH.get(name, f"which: no {name} in ({ctx.fs.env.get('PATH', '')})"))
    return _text("\n".join(lines))


@builtin("sudo")
def _sudo(ctx: CommandContext, args: list[str]) -> CommandResult:
    if not args:
        raise ShellError("usage: sudo command")
    if args[0] in ("-i", "-s", "su"):
        return _text("root@k8s-quest:~#", replace(ctx.fs, current_path="/root"))
    from kubequest.cli import get_interpreter

    interpreter = get_interpreter(args[0])
    if interpreter is None:
        raise ShellError(f"sudo: {args[0]}: command not found")
    return interpreter.execute(replace(ctx, tokens=list(args)))


@builtin("exit", "logout")
def _exit(ctx: CommandContext, args: list[str]) -> CommandResult:
    return _text("logout", replace(ctx.fs, current_path=ctx.fs.home))


@builtin("clear")
def _clear(ctx: CommandContext, args: list[str]) -> CommandResult:
    return _text(CLEAR_SCREEN)


@builtin("help")
def _help(ctx: CommandContext, args: list[str]) -> CommandResult:
    return _text(HELP)


HELP = f"""K8s Quest - available commands:

{YELLOW}kubectl:{RESET}
  kubectl get <resource>                       - list resources (pods/nodes/deployments/services)
  kubectl describe <resource> <name>           - show resource details
  kubectl create deployment <name> --image=IMG - create a Deployment
  kubectl scale deployment <name> --replicas=N - scale a Deployment
  kubectl delete <resource> <name>             - delete a resource
  kubectl edit <resource> <name>               - edit a resource in the editor
  kubectl logs <pod>                           - show pod logs
  kubectl exec <pod> -- <command>              - run a command in a container

{YELLOW}Cluster tools:{RESET}
  etcdctl <member|snapshot|endpoint|alarm|defrag>  - manage etcd
  helm <install|list|repo|template|uninstall>      - manage charts
  systemctl <start|stop|restart|status> <unit>     - manage host services

{YELLOW}Shell:{RESET}
  ls [-la] [path]    - list directory contents
  cd <path>          - change directory
  pwd                - print working directory
  cat <file>         - show file contents
  vim/vi <file>      - edit a file
  mkdir <dir>        - create a directory
  touch <file>       - create an empty file
  cp <src> <dest>    - copy
  mv <src> <dest>    - move or rename
  rm [-rf] <path>    - remove files or directories
  tree [path]        - show a directory tree
  grep <text> <file> - search text
  cmd | grep|head|tail|wc|sort|uniq|base64|cut|awk  - filter output
  cmd > file, cmd >> file                          - redirect output

{YELLOW}Editor:{RESET}
  i   - insert mode       Esc - leave insert mode
  :w  - save              :q  - quit
  :wq - save and quit     :q! - quit without saving

{YELLOW}Other:{RESET}
  help   - show this help
  clear  - clear the screen"""


COMMANDS = sorted(_BUILTINS)


def execute(ctx: CommandContext) -> CommandResult:
    handler = _BUILTINS[ctx.tokens[0]]
    try:
        return handler(ctx, list(ctx.tokens[1:]))
    except SimulatorError as e:
        return _text(e.render())
