"""kubectl get."""

from __future__ import annotations

from kubequest.cli import CommandResult
from kubequest.cli.kubectl._common import (
    OUTPUT_FORMATS,
    Invocation,
    find_or_raise,
    no_resources,
    require,
    resolve_kind,
    result,
    table,
)
from kubequest.cli.kubectl._printers import PRINTERS, namespaced_row
from kubequest.core.cluster import ResourceKind, kind_for
from kubequest.core.errors import UsageError
from kubequest.core.objects import format_labels, parse_label_selector, selector_matches
from kubequest.core.render import to_json, to_yaml

VERBS = ["get"]

# Sections `kubectl get all` prints, in order
ALL_KINDS = ("Pod", "Service", "DaemonSet", "Deployment", "ReplicaSet", "StatefulSet", "Job", "CronJob")


def handle(ctx: Invocation) -> CommandResult:
    type_arg = require(ctx.arg(0), "you must specify the type of resource to get")
    output = ctx.output
    if output and output not in OUTPUT_FORMATS:
        raise UsageError(f'unable to match a printer suitable for the output format "{output}"')

    if "/" in type_arg:
        targets = [arg.partition("/")[::2] for arg in ctx.args]
        return result(_get_named(ctx, targets))

    if type_arg == "all":
        return result(_get_all(ctx))

    type_names = type_arg.split(",")
    names = list(ctx.args[1:])
    if names:
        if len(type_names) > 1:
            raise UsageError("there is no need to specify a resource type as a separate argument when passing arguments in resource/name form")
        return result(_get_named(ctx, [(type_names[0], n) for n in names]))

    if output in ("yaml", "json"):
        raise UsageError(f"you must specify a resource name when using -o {output}")

    kinds = [resolve_kind(t) for t in type_names]
    if len(kinds) == 1:
        return result(_list(ctx, kinds[0], prefix=False))
    sections = [_list(ctx, kind, prefix=True) for kind in kinds]
    return result("\n\n".join(sections))


# === Listing ===


def _selected(ctx: Invocation, kind: ResourceKind) -> list[dict]:
    namespace = None if ctx.all_namespaces else ctx.namespace
    resources = list(ctx.state.items(kind, namespace))
    selector = ctx.flag("l", "selector")
    if selector:
        requirements = parse_label_selector(selector)
        resources = [r for r in resources if selector_matches(r["metadata"].get("labels"), requirements)]
    field_selector = ctx.flag("field-selector")
    if field_selector:
        resources = [r for r in resources if _field_matches(r, field_selector)]
    return resources


def _field_matches(resource: dict, text: str) -> bool:
    """Dotted-path field selectors such as `status.phase=Running` or `spec.nodeName!=node01`."""
    for term in filter(None, text.split(",")):
        negate = "!=" in term
        path, _, value = term.partition("!=" if negate else "=")
        current = resource
        for key in path.strip().split("."):
            current = current.get(key, {}) if isinstance(current, dict) else {}
        actual = current if isinstance(current, str) else ""
        if (actual == value.strip().lstrip("=")) == negate:
            return False
    return True


def _list(ctx: Invocation, kind: ResourceKind, prefix: bool) -> str:
    resources = _selected(ctx, kind)
    if not resources:
        if kind.kind == "Event":
            return "No events found." if ctx.all_namespaces else f"No events found in {ctx.namespace} namespace."
        if ctx.all_namespaces or not kind.namespaced:
            return no_resources(None)
        return no_resources(ctx.namespace)

    if ctx.output == "name":
        return "\n".join(f"{kind.ref}/{r['metadata']['name']}" for r in resources)
    return _table(ctx, kind, resources, prefix)


def _table(ctx: Invocation, kind: ResourceKind, resources: list[dict], prefix: bool) -> str:
    printer = PRINTERS[kind.kind]
    wide = ctx.output == "wide"
    header = list(printer.header)
    if wide:
        header += printer.wide

    rows = []
    for resource in resources:
        row = printer.row(resource, ctx.state)[: len(header)]
        if prefix:
            row[0] = f"{kind.ref}/{row[0]}"
        if ctx.all_namespaces and kind.namespaced:
            row = namespaced_row(resource, row)
        if ctx.has("show-labels"):
            row.append(format_labels(resource["metadata"].get("labels")))
        rows.append(row)

    if ctx.all_namespaces and kind.namespaced:
        header = ["NAMESPACE", *header]
    if ctx.has("show-labels"):
        header.append("LABELS")
    if ctx.has("no-headers"):
        return table(header, rows).split("\n", 1)[1] if rows else ""
    return table(header, rows)


def _get_all(ctx: Invocation) -> str:
    sections = []
    for kind_name in ALL_KINDS:
        kind = kind_for(kind_name)
        resources = _selected(ctx, kind)
        if resources:
            sections.append(_table(ctx, kind, resources, prefix=True))
    if not sections:
        return no_resources(None if ctx.all_namespaces else ctx.namespace)
    return "\n\n".join(sections)


# === Named resources ===


def _get_named(ctx: Invocation, targets: list[tuple[str, str]]) -> str:
    found: list[tuple[ResourceKind, dict]] = []
    for type_name, name in targets:
        kind = resolve_kind(type_name)
        if not name:
            raise UsageError("arguments in resource/name form must have a single resource and name")
        found.append((kind, find_or_raise(ctx.state, kind, name, ctx.namespace)))

    if ctx.output == "yaml":
        return "\n---\n".join(to_yaml(resource) for _, resource in found)
    if ctx.output == "json":
        return "\n".join(to_json(resource) for _, resource in found)
    if ctx.output == "name":
        return "\n".join(f"{kind.ref}/{r['metadata']['name']}" for kind, r in found)

    kinds = {kind.kind for kind, _ in found}
    sections = []
    for kind_name in dict.fromkeys(kind.kind for kind, _ in found):
        kind = kind_for(kind_name)
        resources = [r for k, r in found if k.kind == kind_name]
        sections.append(_table(ctx, kind, resources, prefix=len(kinds) > 1))
    return "\n\n".join(sections)
