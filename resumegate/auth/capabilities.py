"""Role/attribute capability registry.

Grants are triples of (resource, action, scope) attached to a role. Roles form
a single inheritance chain (admin extends premium extends free), so a check
for a role succeeds if the role or any ancestor holds a matching grant. An
``any`` grant satisfies an ``own`` check; the reverse never holds.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Set, Tuple


class Role(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    ADMIN = "admin"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class Scope(str, Enum):
    OWN = "own"
    ANY = "any"


CRUD = (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE)


class Features:
    """Feature and resource names used in grants and permission sets."""

    BASIC_EDITOR = "basic_editor"
    ADVANCED_EDITOR = "advanced_editor"
    BASIC_AI = "basic_ai"
    ADVANCED_AI = "advanced_ai"
    EXPORT_PDF = "export_pdf"
    EXPORT_DOCX = "export_docx"
    EXPORT_PNG = "export_png"
    EXPORT_JSON = "export_json"
    BASIC_TEMPLATES = "basic_templates"
    PREMIUM_TEMPLATES = "premium_templates"
    CUSTOM_SECTIONS = "custom_sections"
    BASIC_SUPPORT = "basic_support"
    PRIORITY_SUPPORT = "priority_support"
    ANALYTICS = "analytics"


class Resources:
    USER = "user"
    TEMPLATE = "template"
    RESUME = "resume"


class RegistryFrozenError(RuntimeError):
    """Raised when a frozen registry is mutated."""


GrantKey = Tuple[str, str, str]


class CapabilityRegistry:
    """Static table of role grants with single-parent inheritance."""

    def __init__(self) -> None:
        self._grants: Dict[str, Set[GrantKey]] = {}
        self._parents: Dict[str, str] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise RegistryFrozenError("capability registry is frozen")

    def grant(self, role: str, resource: str, action: str, scope: str = Scope.ANY) -> "CapabilityRegistry":
        self._ensure_mutable()
        key = (str(resource), Action(action).value, Scope(scope).value)
        self._grants.setdefault(Role(role).value, set()).add(key)
        return self

    def extend(self, role: str, parent: str) -> "CapabilityRegistry":
        """Make ``role`` inherit every grant of ``parent``."""
        self._ensure_mutable()
        child, ancestor = Role(role).value, Role(parent).value
        cursor: Optional[str] = ancestor
        while cursor is not None:
            if cursor == child:
                raise ValueError(f"role inheritance cycle: {child} -> {ancestor}")
            cursor = self._parents.get(cursor)
        self._parents[child] = ancestor
        return self

    def freeze(self) -> "CapabilityRegistry":
        self._frozen = True
        return self

    def can(self, role: str, resource: str, action: str, scope: str = Scope.ANY) -> bool:
        """Whether ``role`` (or an ancestor) may perform ``action`` on ``resource``.

        Unknown roles, resources, actions or scopes yield False.
        """
        try:
            role_name = Role(role).value
            action_name = Action(action).value
            scope_name = Scope(scope).value
        except ValueError:
            return False

        wanted = {(resource, action_name, Scope.ANY.value)}
        if scope_name == Scope.OWN.value:
            wanted.add((resource, action_name, Scope.OWN.value))

        cursor: Optional[str] = role_name
        while cursor is not None:
            if self._grants.get(cursor, set()) & wanted:
                return True
            cursor = self._parents.get(cursor)
        return False


def build_default_registry() -> CapabilityRegistry:
    """The product's grant table, frozen."""
    registry = CapabilityRegistry()

    # free
    for action in CRUD:
        registry.grant(Role.FREE, Features.BASIC_EDITOR, action, Scope.ANY)
        registry.grant(Role.FREE, Resources.RESUME, action, Scope.OWN)
    for feature in (Features.BASIC_AI, Features.EXPORT_PDF, Features.BASIC_SUPPORT):
        registry.grant(Role.FREE, feature, Action.CREATE, Scope.ANY)
        registry.grant(Role.FREE, feature, Action.READ, Scope.ANY)
    registry.grant(Role.FREE, Features.BASIC_TEMPLATES, Action.READ, Scope.ANY)
    registry.grant(Role.FREE, Resources.TEMPLATE, Action.UPDATE, Scope.OWN)
    registry.grant(Role.FREE, Resources.TEMPLATE, Action.DELETE, Scope.OWN)

    # premium
    registry.extend(Role.PREMIUM, Role.FREE)
    for action in CRUD:
        registry.grant(Role.PREMIUM, Features.ADVANCED_EDITOR, action, Scope.ANY)
        registry.grant(Role.PREMIUM, Features.CUSTOM_SECTIONS, action, Scope.ANY)
    for feature in (
        Features.ADVANCED_AI,
        Features.EXPORT_DOCX,
        Features.EXPORT_PNG,
        Features.EXPORT_JSON,
        Features.PRIORITY_SUPPORT,
    ):
        registry.grant(Role.PREMIUM, feature, Action.CREATE, Scope.ANY)
        registry.grant(Role.PREMIUM, feature, Action.READ, Scope.ANY)
    registry.grant(Role.PREMIUM, Features.PREMIUM_TEMPLATES, Action.READ, Scope.ANY)
    registry.grant(Role.PREMIUM, Features.ANALYTICS, Action.READ, Scope.ANY)

    # admin
    registry.extend(Role.ADMIN, Role.PREMIUM)
    for resource in (Resources.USER, Resources.TEMPLATE, Resources.RESUME):
        for action in CRUD:
            registry.grant(Role.ADMIN, resource, action, Scope.ANY)
    registry.grant(Role.ADMIN, Features.ANALYTICS, Action.READ, Scope.ANY)

    return registry.freeze()
