"""
Typed command outcomes.

Interpreters return one of these instead of magic-prefixed strings so the
Simulator can switch on type when a command needs a follow-up action.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union


@dataclass(frozen=True)
class Text:
    """Plain output to display.

    `newline` is False only when the command ended its output mid-line
    (`echo -n`). Byte-exact pipeline stages such as base64 read it.
    """

    text: str = ""
    newline: bool = True

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class FileRequest:
    """kubectl apply/create/delete -f: read a manifest from the virtual filesystem."""

    action: Literal["apply", "create", "delete"]
    path: str


@dataclass(frozen=True)
class EditRequest:
    """kubectl edit: render the live resource and open it in the editor."""

    kind: str
    namespace: str
    name: str


@dataclass(frozen=True)
class ExecModeRequest:
    """kubectl exec without a command: enter the in-container shell."""

    pod_name: str
    namespace: str = "default"


@dataclass(frozen=True)
class EditorRequest:
    """Open the external editor on a buffer.

    `resource` is set for `kubectl edit` buffers as (kind, namespace, name);
    it is None for plain files opened with vim/vi/nano.
    """

    file_path: str
    content: str
    is_new: bool
    resource: tuple[str, str, str] | None = None


CommandOutcome = Union[Text, FileRequest, EditRequest, ExecModeRequest]
"""What a kubectl handler may hand back to the Simulator."""

SessionOutcome = Union[Text, EditorRequest, ExecModeRequest]
"""What Simulator.execute_command hands back to the UI."""
