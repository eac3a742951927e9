"""
Command dispatcher and REPL entry point.

A Simulator owns the three pieces of session state (cluster, filesystem,
host) and routes each input line to the interpreter that owns its leading
token. Interpreters return new state values; the Simulator swaps them in
only after the command has finished, so a failing command leaves nothing
half-applied.

Lines are split into pipeline stages and an optional trailing `>`/`>>`
redirect with bashlex. Anything bashlex cannot parse falls back to the
quote-aware tokenizer, split on bare `|`, `>` and `>>` tokens.
"""

from __future__ import annotations

import re
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import bashlex

from kubequest.cli import CommandContext, CommandResult, get_interpreter
from kubequest.cli.kubectl.remote import run_in_container
from kubequest.cli.shell import run_filter
from kubequest.completion import complete
from kubequest.core import config
from kubequest.core.cluster import ClusterState, initial_cluster_state, kind_for
from kubequest.core.errors import NotFound, SimulatorError
from kubequest.core.filesystem import (
    FileSystem,
    clone_fs,
    create_node,
    get_node,
    initial_filesystem,
    make_dir,
    read_file,
    resolve,
    write_file,
)
from kubequest.core.host import HostState
from kubequest.core.manifest import apply_manifest, create_manifest, delete_manifest
from kubequest.core.objects import new_rng, using_rng
from kubequest.core.outcome import (
    EditorRequest,
    EditRequest,
    ExecModeRequest,
    FileRequest,
    SessionOutcome,
    Text,
)
from kubequest.core.patch import apply_edit
from kubequest.core.render import edit_yaml
from kubequest.core.tokenizer import expand_env_vars, tokenize

# `<pod>`, `<name>`: copied from a hint, not a real command
_PLACEHOLDER = re.compile(r"<[a-zA-Z][a-zA-Z0-9_-]*>")

OUTPUT_REDIRECTS = {">", ">>"}

Objective = Callable[[ClusterState, list[str]], bool]


@dataclass(frozen=True)
class ParsedLine:
    """Pipeline stages of one input line, plus where its output goes."""

    stages: list[tuple[str, list[str]]]  # (stage text, tokens)
    redirect: str | None = None
    append: bool = False


# === Line parsing ===


def _stage(line: str, node: Any) -> tuple[str, list[str], tuple[str, str] | None]:
    """Text, words and output redirect of one bashlex command node."""
    words = [p for p in node.parts if p.kind == "word"]
    redirect = None
    for part in node.parts:
        if part.kind == "redirect" and part.type in OUTPUT_REDIRECTS:
            if isinstance(part.output, int):
                continue
            if getattr(part, "input", None) not in (None, 1):
                continue  # 2> leaves stdout alone
            redirect = (part.type, part.output.word)
    text = line[words[0].pos[0] : words[-1].pos[1]] if words else ""
    return text, [_word(line, w) for w in words], redirect


def _word(line: str, node: Any) -> str:
    """One bashlex word, unquoted by the same rules as the token fallback."""
    tokens = tokenize(line[node.pos[0] : node.pos[1]])
    return tokens[0] if len(tokens) == 1 else node.word


def _parse_bashlex(line: str) -> ParsedLine | None:
    try:
        nodes = bashlex.parse(line)
    except Exception:
        return None
    if len(nodes) != 1:
        return None
    node = nodes[0]
    if node.kind == "command":
        commands = [node]
    elif node.kind == "pipeline":
        commands = [p for p in node.parts if p.kind == "command"]
    else:
        return None

    stages = []
    redirect = None
    for i, command in enumerate(commands):
        text, words, target = _stage(line, command)
        if not words:
            return None
        if target is not None:
            if i != len(commands) - 1:
                return None
            redirect = target
        stages.append((text, words))
    if redirect is None:
        return ParsedLine(stages)
    return ParsedLine(stages, redirect[1], redirect[0] == ">>")


def _parse_tokens(line: str) -> ParsedLine | None:
    """Fallback split for lines bashlex rejects."""
    tokens = tokenize(line)
    redirect = None
    append = False
    if len(tokens) >= 2 and tokens[-2] in OUTPUT_REDIRECTS:
        append = tokens[-2] == ">>"
        redirect = tokens[-1]
        tokens = tokens[:-2]

    stages: list[list[str]] = [[]]
    for token in tokens:
        if token == "|":
            stages.append([])
        else:
            stages[-1].append(token)
    if any(not s for s in stages):
        return None

    if len(stages) == 1:
        text = line.strip() if redirect is None else " ".join(stages[0])
        return ParsedLine([(text, stages[0])], redirect, append)
    return ParsedLine([(" ".join(s), s) for s in stages], redirect, append)


def parse_line(line: str) -> ParsedLine | None:
    """Split a line into stages and a redirect. None if it holds no command."""
    if not line.strip():
        return None
    return _parse_bashlex(line) or _parse_tokens(line)


# === Simulator ===


class Simulator:
    """One terminal session against a simulated cluster."""

    def __init__(
        self,
        cluster: ClusterState | None = None,
        fs: FileSystem | None = None,
        host: HostState | None = None,
        settings: config.Config | None = None,
    ):
        self.settings = settings or config.Config()
        self.rng = new_rng(self.settings.seed)
        self.cluster = cluster or initial_cluster_state()
        self.fs = fs or initial_filesystem(self.settings.home)
        self.host = host or HostState()
        self.history: list[str] = []
        self.exec_mode: ExecModeRequest | None = None
        self.editor: EditorRequest | None = None
        self.objectives: dict[str, Objective] = {}
        self.completed: dict[str, bool] = {}

    # --- setup ---

    def add_file(self, path: str, content: str) -> None:
        """Place a file, creating missing parent directories."""
        fs = clone_fs(self.fs)
        target = resolve(fs, path)
        current = ""
        for part in [p for p in target.split("/") if p][:-1]:
            current += "/" + part
            if get_node(fs, current) is None:
                create_node(fs, current, make_dir(part))
        updated = write_file(fs, target, content)
        if updated is None:
            raise ValueError(f"cannot create {target}")
        self.fs = updated

    def add_objective(self, name: str, check: Objective) -> None:
        self.objectives[name] = check
        self.completed[name] = False

    def check_objectives(self) -> dict[str, bool]:
        for name, check in self.objectives.items():
            self.completed[name] = bool(check(self.cluster, list(self.history)))
        return dict(self.completed)

    def completions(self, partial: str) -> list[str]:
        return complete(partial, self.cluster, self.fs)

    # --- commands ---

    def execute_command(self, line: str) -> SessionOutcome:
        """Run one input line and return what the terminal should show or open."""
        line = line.strip()
        if self.exec_mode is not None:
            return self._in_container(line)

        if line and not _PLACEHOLDER.search(line):
            self.history.append(line)
            if len(self.history) > self.settings.history_limit:
                del self.history[: len(self.history) - self.settings.history_limit]

        expanded = expand_env_vars(line, self.fs.env)
        parsed = parse_line(expanded)
        if parsed is None:
            return Text("")

        config.log("info", "command", command=line, stages=len(parsed.stages))
        try:
            with using_rng(self.rng):
                outcome = self._pipeline(parsed)
        except Exception as e:
            config.log("error", "unexpected_error", command=line, error=repr(e))
            outcome = Text(f"Error: {e}")

        if self.objectives:
            self.check_objectives()
        return outcome

    def _pipeline(self, parsed: ParsedLine) -> SessionOutcome:
        text, tokens = parsed.stages[0]
        outcome = self._run(text, tokens)
        if len(parsed.stages) == 1 and parsed.redirect is None:
            return outcome
        if not isinstance(outcome, Text):
            return outcome

        output = outcome.text
        terminated = outcome.newline
        for _, stage in parsed.stages[1:]:
            try:
                output = run_filter(stage, output, terminated)
                terminated = True
            except SimulatorError as e:
                return Text(e.render())

        if parsed.redirect is None:
            return Text(output)
        updated = write_file(self.fs, parsed.redirect, output, append=parsed.append)
        if updated is None:
            return Text(f"bash: {parsed.redirect}: No such file or directory")
        self.fs = updated
        return Text("")

    def _run(self, text: str, tokens: list[str]) -> SessionOutcome:
        interpreter = get_interpreter(tokens[0])
        if interpreter is None:
            return Text(f"command not found: {tokens[0]}")
        ctx = CommandContext(tokens, text, self.cluster, self.fs, self.host)
        result = interpreter.execute(ctx)
        self._commit(result)
        return self._follow_up(result.output)

    def _commit(self, result: CommandResult) -> None:
        if result.cluster is not None:
            self.cluster = result.cluster
        if result.fs is not None:
            self.fs = result.fs
        if result.host is not None:
            self.host = result.host

    def _follow_up(self, outcome) -> SessionOutcome:
        """Resolve handoffs that need the filesystem or the editor."""
        if isinstance(outcome, FileRequest):
            return Text(self._from_file(outcome))
        if isinstance(outcome, EditRequest):
            kind = kind_for(outcome.kind)
            live = self.cluster.find(kind, outcome.name, outcome.namespace)
            if live is None:
                return Text(NotFound(kind.resource, outcome.name).render())
            outcome = EditorRequest(
                f"/tmp/kubectl-edit-{outcome.name}.yaml",
                edit_yaml(live),
                False,
                (outcome.kind, outcome.namespace, outcome.name),
            )
        if isinstance(outcome, EditorRequest):
            self.editor = outcome
        elif isinstance(outcome, ExecModeRequest):
            self.exec_mode = outcome
        return outcome

    def _from_file(self, request: FileRequest) -> str:
        content = read_file(self.fs, request.path)
        if content is None:
            return f'error: the path "{request.path}" does not exist'
        if request.action == "delete":
            output, self.cluster = delete_manifest(content, self.cluster)
        elif request.action == "create":
            output, self.cluster = create_manifest(content, self.cluster)
        else:
            output, self.cluster = apply_manifest(content, self.cluster)
        return output

    def _in_container(self, line: str) -> Text:
        pod_ref = self.exec_mode
        if line == "exit":
            self.exec_mode = None
            return Text("exit")
        pod = self.cluster.find(kind_for("Pod"), pod_ref.pod_name, pod_ref.namespace)
        if pod is None:
            self.exec_mode = None
            return Text("error: pod no longer exists")
        return Text(run_in_container(line, pod, self.cluster))

    # --- editor ---

    def save_editor(self, request: EditorRequest, content: str) -> str:
        """Write a saved buffer back, to the filesystem or to the live resource."""
        self.editor = None

        if request.resource is not None:
            kind, namespace, name = request.resource
            try:
                with using_rng(self.rng):
                    output, self.cluster = apply_edit(kind, name, namespace, content, self.cluster)
            except SimulatorError as e:
                output = e.render()
        else:
            updated = write_file(self.fs, request.file_path, content)
            if updated is None:
                output = f'"{request.file_path}" E212: Can\'t open file for writing'
            else:
                self.fs = updated
                output = f'"{request.file_path}" written'

        if self.objectives:
            self.check_objectives()
        return output

    def close_editor(self) -> None:
        self.editor = None

    # --- display ---

    def prompt(self) -> str:
        if self.exec_mode is not None:
            return f"root@{self.exec_mode.pod_name}:/# "
        path = self.fs.current_path
        if path == "/root" or path.startswith("/root/"):
            return f"root@k8s-quest:~{path[len('/root'):]}# "
        if path == self.fs.home or path.startswith(self.fs.home + "/"):
            path = "~" + path[len(self.fs.home) :]
        return f"{self.fs.env.get('USER', 'user')}@k8s-quest:{path}$ "


# === Entry point ===

EXEC_BANNER = "Entering container shell on {pod}...\nType 'exit' to leave."
EDITOR_BANNER = "--- {path} (end with :wq to save, :q to discard) ---"


def _edit_in_terminal(sim: Simulator, request: EditorRequest, stdin) -> str:
    print(EDITOR_BANNER.format(path=request.file_path))
    print(request.content)
    lines = []
    for raw in stdin:
        line = raw.rstrip("\n")
        if line == ":q":
            sim.close_editor()
            return ""
        if line == ":wq":
            return sim.save_editor(request, "\n".join(lines))
        lines.append(line)
    sim.close_editor()
    return ""


def main() -> None:
    try:
        settings = config.load_config(Path.cwd())
    except ValueError as e:
        print(f"kubequest: {e}", file=sys.stderr)
        sys.exit(1)
    config.configure_logging(settings)

    sim = Simulator(settings=settings)
    config.log("info", "session_start", seed=settings.seed)
    while True:
        print(sim.prompt(), end="", flush=True)
        raw = sys.stdin.readline()
        if not raw:
            print()
            break
        outcome = sim.execute_command(raw)
        if isinstance(outcome, EditorRequest):
            message = _edit_in_terminal(sim, outcome, sys.stdin)
            if message:
                print(message)
        elif isinstance(outcome, ExecModeRequest):
            print(EXEC_BANNER.format(pod=outcome.pod_name))
        elif outcome.text:
            print(outcome.text)


if __name__ == "__main__":
    main()
