"""
Error taxonomy for the simulator.

Interpreters raise these internally; the interpreter entry points turn them
into plain output text and hand back the unchanged input state. Message text
mirrors the API server and CLI wording because scenario checks match on it.
"""

from __future__ import annotations


class SimulatorError(Exception):
    """Base class for errors rendered as command output."""

    def render(self) -> str:
        return str(self)


class NotFound(SimulatorError):
    """A referenced resource does not exist."""

    def __init__(self, kind: str, name: str, namespace: str | None = None):
        self.kind = kind
        self.name = name
        self.namespace = namespace
        message = f'Error from server (NotFound): {kind} "{name}" not found'
        if namespace:
            message += f' in namespace "{namespace}"'
        super().__init__(message)


class AlreadyExists(SimulatorError):
    """A create collided with an existing resource of the same name."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(
            f'Error from server (AlreadyExists): {kind} "{name}" already exists'
        )


class UsageError(SimulatorError):
    """Missing or malformed arguments."""

    def __init__(self, message: str, usage: str | None = None):
        self.message = message
        self.usage = usage
        text = f"Error: {message}"
        if usage:
            text += f"\n\nUsage:\n  {usage}"
        super().__init__(text)


class UnknownCommand(SimulatorError):
    def __init__(self, command: str, tool: str = "kubectl"):
        self.command = command
        super().__init__(
            f'Error: unknown command "{command}" for "{tool}"\n'
            f"Run '{tool} --help' for usage."
        )


class UnknownResourceType(SimulatorError):
    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(f'error: the server doesn\'t have a resource type "{resource}"')


class InvalidManifest(SimulatorError):
    def __init__(self, message: str = "invalid YAML - missing kind or name"):
        super().__init__(f"error: {message}")


class UnknownKind(SimulatorError):
    """A manifest names a Kind the apply engine does not handle."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f'error: unknown resource kind "{kind}"')


class Invalid(SimulatorError):
    """The API server rejected an object that failed validation."""

    def __init__(self, kind: str, name: str, field: str, value: str, reason: str):
        self.kind = kind
        self.name = name
        self.field = field
        super().__init__(f'The {kind} "{name}" is invalid: {field}: Invalid value: {value}: {reason}')
