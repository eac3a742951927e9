"""
RBAC authorization.

check_access walks the same path as the API server's RBAC authorizer,
first match wins:

1. members of system:masters are always allowed;
2. ClusterRoleBindings whose subject matches and whose ClusterRole has a
   matching rule allow everywhere;
3. for namespaced requests, RoleBindings in that namespace allow when
   their subject matches and the referenced Role (same namespace) or
   ClusterRole has a matching rule. A ClusterRole reached through a
   RoleBinding grants only inside the binding's namespace.

Anything else is denied with a readable reason.
"""

from __future__ import annotations

from dataclasses import dataclass

from kubequest.core.cluster import ClusterState, lookup_kind, namespace_of

SUPERUSER_GROUP = "system:masters"
RBAC_GROUP = "rbac.authorization.k8s.io"
SERVICE_ACCOUNT_PREFIX = "system:serviceaccount:"

VERBS = ("get", "list", "watch", "create", "update", "patch", "delete")

# Resources reported by get_user_permissions / can-i --list
COMMON_RESOURCES = (
    "pods",
    "services",
    "deployments",
    "configmaps",
    "secrets",
    "persistentvolumeclaims",
    "ingresses",
    "jobs",
    "cronjobs",
    "daemonsets",
    "statefulsets",
    "roles",
    "rolebindings",
)


@dataclass(frozen=True)
class AccessRequest:
    user: str
    groups: tuple[str, ...]
    verb: str
    resource: str
    namespace: str | None = None
    resource_name: str | None = None
    api_group: str | None = None  # None = derive from the resource
    service_account: tuple[str, str] | None = None  # (namespace, name)


@dataclass(frozen=True)
class MatchedRule:
    kind: str  # Role | ClusterRole
    name: str
    binding: str


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str
    matched_rule: MatchedRule | None = None


def normalize_resource(resource: str) -> tuple[str, str]:
    """Map a typed resource ('deploy', 'pods/log', 'deployments.apps') to (plural, group)."""
    base, _, sub = resource.partition("/")
    kind = lookup_kind(base)
    if kind is None:
        name, _, group = base.partition(".")
        return (f"{name}/{sub}" if sub else name), group
    plural = f"{kind.plural}/{sub}" if sub else kind.plural
    return plural, kind.group


def parse_service_account(user: str) -> tuple[str, str] | None:
    """'system:serviceaccount:ns:name' -> (ns, name)."""
    if not user.startswith(SERVICE_ACCOUNT_PREFIX):
        return None
    rest = user[len(SERVICE_ACCOUNT_PREFIX):]
    namespace, _, name = rest.partition(":")
    if not namespace or not name:
        return None
    return namespace, name


# === Matching ===


def matches_subject(request: AccessRequest, subjects: list[dict] | None) -> bool:
    for subject in subjects or []:
        kind = subject.get("kind")
        if kind == "User" and subject.get("name") == request.user:
            return True
        if kind == "Group" and subject.get("name") in request.groups:
            return True
        if kind == "ServiceAccount" and request.service_account is not None:
            sa_ns, sa_name = request.service_account
            if subject.get("name") == sa_name and (subject.get("namespace") or "default") == sa_ns:
                return True
    return False


def matches_rule(request: AccessRequest, rule: dict) -> bool:
    """apiGroup, resource (or its base before '/'), verb and resourceNames must all match."""
    plural, group = normalize_resource(request.resource)
    if request.api_group is not None:
        group = request.api_group

    api_groups = rule.get("apiGroups") or [""]
    if "*" not in api_groups and group not in api_groups:
        return False

    resources = rule.get("resources") or []
    if "*" not in resources and plural not in resources and plural.split("/")[0] not in resources:
        return False

    verbs = rule.get("verbs") or []
    if "*" not in verbs and request.verb not in verbs:
        return False

    names = rule.get("resourceNames") or []
    if names and request.resource_name not in names:
        return False
    return True


def _any_rule(request: AccessRequest, role: dict | None) -> bool:
    return role is not None and any(matches_rule(request, r) for r in role.get("rules") or [])


def _find(collection: tuple[dict, ...], name: str, namespace: str | None = None) -> dict | None:
    for item in collection:
        if item["metadata"]["name"] != name:
            continue
        if namespace is not None and namespace_of(item) != namespace:
            continue
        return item
    return None


def check_access(request: AccessRequest, state: ClusterState) -> AccessDecision:
    if SUPERUSER_GROUP in request.groups:
        return AccessDecision(
            True,
            f"User is member of {SUPERUSER_GROUP} group",
            MatchedRule("ClusterRole", "cluster-admin", SUPERUSER_GROUP),
        )

    for binding in state.cluster_role_bindings:
        if not matches_subject(request, binding.get("subjects")):
            continue
        role = _find(state.cluster_roles, binding["roleRef"]["name"])
        if _any_rule(request, role):
            name = binding["metadata"]["name"]
            return AccessDecision(
                True,
                f'Allowed by ClusterRoleBinding "{name}"',
                MatchedRule("ClusterRole", role["metadata"]["name"], name),
            )

    if request.namespace:
        for binding in state.role_bindings:
            if namespace_of(binding) != request.namespace:
                continue
            if not matches_subject(request, binding.get("subjects")):
                continue
            ref = binding["roleRef"]
            name = binding["metadata"]["name"]
            if ref.get("kind") == "Role":
                role = _find(state.roles, ref["name"], request.namespace)
                if _any_rule(request, role):
                    return AccessDecision(
                        True,
                        f'Allowed by RoleBinding "{name}"',
                        MatchedRule("Role", role["metadata"]["name"], name),
                    )
            else:
                role = _find(state.cluster_roles, ref["name"])
                if _any_rule(request, role):
                    return AccessDecision(
                        True,
                        f'Allowed by RoleBinding "{name}" referencing ClusterRole',
                        MatchedRule("ClusterRole", role["metadata"]["name"], name),
                    )

    where = f' in namespace "{request.namespace}"' if request.namespace else ""
    return AccessDecision(
        False,
        f'User "{request.user}" cannot {request.verb} resource "{request.resource}"{where}',
    )


# === Queries ===


def _identity(
    state: ClusterState, as_user: str | None, as_groups: list[str] | tuple[str, ...] | None
) -> tuple[str, tuple[str, ...], tuple[str, str] | None]:
    """Who a request runs as. Impersonating a user drops the caller's groups."""
    context = state.current_context
    if as_user is None and not as_groups:
        sa = None
        if context.service_account:
            sa = parse_service_account(context.service_account) or ("default", context.service_account)
        return context.user, tuple(context.groups), sa

    user = as_user or context.user
    groups = tuple(as_groups or ()) + ("system:authenticated",)
    sa = parse_service_account(user)
    if sa is not None:
        groups += ("system:serviceaccounts", f"system:serviceaccounts:{sa[0]}")
    return user, tuple(dict.fromkeys(groups)), sa


def can_i(
    verb: str,
    resource: str,
    state: ClusterState,
    namespace: str | None = None,
    resource_name: str | None = None,
    as_user: str | None = None,
    as_groups: list[str] | tuple[str, ...] | None = None,
) -> AccessDecision:
    """kubectl auth can-i, for the current context or an impersonated identity."""
    user, groups, sa = _identity(state, as_user, as_groups)
    plural, group = normalize_resource(resource)
    request = AccessRequest(
        user=user,
        groups=groups,
        verb=verb,
        resource=plural,
        namespace=namespace,
        resource_name=resource_name,
        api_group=group,
        service_account=sa,
    )
    return check_access(request, state)


def get_user_permissions(
    user: str, groups: list[str] | tuple[str, ...], namespace: str, state: ClusterState
) -> list[tuple[str, list[str]]]:
    """(resource, allowed verbs) for each common resource the identity can touch."""
    sa = parse_service_account(user)
    permissions = []
    for resource in COMMON_RESOURCES:
        plural, group = normalize_resource(resource)
        allowed = [
            verb
            for verb in VERBS
            if check_access(
                AccessRequest(
                    user=user,
                    groups=tuple(groups),
                    verb=verb,
                    resource=plural,
                    namespace=namespace,
                    api_group=group,
                    service_account=sa,
                ),
                state,
            ).allowed
        ]
        if allowed:
            permissions.append((resource, allowed))
    return permissions


def identity_permissions(
    state: ClusterState,
    namespace: str,
    as_user: str | None = None,
    as_groups: list[str] | tuple[str, ...] | None = None,
) -> list[tuple[str, list[str]]]:
    user, groups, _ = _identity(state, as_user, as_groups)
    return get_user_permissions(user, groups, namespace, state)


# === Factories ===


def make_role(name: str, namespace: str, rules: list[dict]) -> dict:
    return {
        "apiVersion": f"{RBAC_GROUP}/v1",
        "kind": "Role",
        "metadata": {"name": name, "namespace": namespace},
        "rules": rules,
    }


def make_cluster_role(name: str, rules: list[dict]) -> dict:
    return {
        "apiVersion": f"{RBAC_GROUP}/v1",
        "kind": "ClusterRole",
        "metadata": {"name": name},
        "rules": rules,
    }


def make_role_binding(
    name: str, namespace: str, role_kind: str, role_name: str, subjects: list[dict]
) -> dict:
    return {
        "apiVersion": f"{RBAC_GROUP}/v1",
        "kind": "RoleBinding",
        "metadata": {"name": name, "namespace": namespace},
        "roleRef": {"apiGroup": RBAC_GROUP, "kind": role_kind, "name": role_name},
        "subjects": subjects,
    }


def make_cluster_role_binding(name: str, role_name: str, subjects: list[dict]) -> dict:
    return {
        "apiVersion": f"{RBAC_GROUP}/v1",
        "kind": "ClusterRoleBinding",
        "metadata": {"name": name},
        "roleRef": {"apiGroup": RBAC_GROUP, "kind": "ClusterRole", "name": role_name},
        "subjects": subjects,
    }


def make_rules(verbs: list[str], resources: list[str], resource_names: list[str] | None = None) -> list[dict]:
    """Group resources by API group into one rule per group, the way kubectl create role does."""
    by_group: dict[str, list[str]] = {}
    for resource in resources:
        plural, group = normalize_resource(resource)
        by_group.setdefault(group, []).append(plural)
    rules = []
    for group, plurals in by_group.items():
        rule = {"apiGroups": [group], "resources": plurals, "verbs": list(verbs)}
        if resource_names:
            rule["resourceNames"] = list(resource_names)
        rules.append(rule)
    return rules
