"""Derive (resource, action, resource_id) from an HTTP method and path.

A best-effort heuristic over REST conventions, not a router-integrated mapping:
unmapped paths fall back to generic categories and nothing here raises.

Known limitation: the first segment is always the resource, so admin routes such
as /api/admin/borrowers/42 classify as resource "admin" with resource_id
"borrowers". Reporting that needs the business resource must read metadata.path.
"""

import re
from dataclasses import dataclass
from typing import Optional

from kindling.audit.models import AuditAction

API_PREFIX = "/api/"

# Never treated as a resource identifier when found in second position.
RESERVED_SUBROUTES = frozenset({"list", "search", "export", "import", "bulk"})

# Checked in order; first substring found in the path wins.
POST_ACTION_KEYWORDS = (
    ("/login", AuditAction.LOGIN),
    ("/logout", AuditAction.LOGOUT),
    ("/import", AuditAction.IMPORT),
    ("/approve", AuditAction.APPROVE),
    ("/reject", AuditAction.REJECT),
    ("/bulk", AuditAction.BULK_CREATE),
)

# Health checks and static assets are never classified or logged.
EXCLUDED_PATH_PREFIXES = (
    "/health",
    "/ping",
    "/favicon.ico",
    "/assets/",
    "/public/",
)

_PREFIX_RE = re.compile(r"^/api/")


@dataclass(frozen=True)
class Classification:
    resource: str
    action: AuditAction
    resource_id: Optional[str] = None


def is_excluded_path(path: str) -> bool:
    """True for paths the audit pipeline ignores: the skip list and anything outside the API."""
    if any(path.startswith(prefix) for prefix in EXCLUDED_PATH_PREFIXES):
        return True
    return not path.startswith(API_PREFIX)


def _action_for(method: str, clean_path: str, resource_id: Optional[str]) -> AuditAction:
    if method == "GET":
        if resource_id:
            return AuditAction.READ
        if "/search" in clean_path:
            return AuditAction.SEARCH
        if "/export" in clean_path:
            return AuditAction.EXPORT
        return AuditAction.LIST
    if method == "POST":
        for keyword, action in POST_ACTION_KEYWORDS:
            if keyword in clean_path:
                return action
        return AuditAction.CREATE
    if method in ("PUT", "PATCH"):
        return AuditAction.UPDATE
    if method == "DELETE":
        return AuditAction.DELETE
    return AuditAction.coerce(method.lower())


def classify_request(method: str, path: str) -> Classification:
    """Classify a request by method and path. Order-sensitive and deterministic."""
    method = (method or "").upper()
    clean_path = _PREFIX_RE.sub("", path or "", count=1)
    segments = [s for s in clean_path.split("/") if s]

    resource = segments[0] if segments else "unknown"
    resource_id = None
    if len(segments) >= 2 and segments[1] not in RESERVED_SUBROUTES:
        resource_id = segments[1]

    return Classification(
        resource=resource,
        action=_action_for(method, clean_path, resource_id),
        resource_id=resource_id,
    )
