"""Immutable audit record model and its structured metadata shapes. No FastAPI."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union


class AuditAction(str, Enum):
    """Normalized verb recorded for every audit record."""

    CREATE = "create"
    READ = "read"
    LIST = "list"
    SEARCH = "search"
    EXPORT = "export"
    UPDATE = "update"
    DELETE = "delete"
    LOGIN = "login"
    LOGOUT = "logout"
    IMPORT = "import"
    APPROVE = "approve"
    REJECT = "reject"
    BULK_CREATE = "bulk_create"
    UNKNOWN = "unknown"  # Classification gap, not an error

    @classmethod
    def coerce(cls, value: str) -> "AuditAction":
        """Map a raw verb onto the vocabulary; anything outside it is UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class AuditOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"

    @classmethod
    def from_status_code(cls, status_code: int) -> "AuditOutcome":
        return cls.SUCCESS if 200 <= status_code < 300 else cls.FAILURE


@dataclass(frozen=True)
class NetworkContext:
    ip_address: str = "unknown"
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class AuditChanges:
    """Redacted before/after snapshots of the acted-upon payload."""

    before: Optional[Any] = None
    after: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.before is not None:
            out["before"] = self.before
        if self.after is not None:
            out["after"] = self.after
        return out


@dataclass(frozen=True)
class RequestMetadata:
    """Metadata captured by the HTTP audit middleware."""

    method: str
    path: str
    status_code: int
    duration_ms: int
    query: Optional[Dict[str, Any]] = None
    body: Optional[Any] = None
    error: Optional[str] = None
    correlation_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out = {k: v for k, v in asdict(self).items() if k != "extra" and v is not None}
        out.update(self.extra)
        return out


@dataclass(frozen=True)
class AuthEventMetadata:
    """Metadata for manually logged authentication events (login, logout)."""

    method: str = "POST"
    path: Optional[str] = None
    error: Optional[str] = None
    correlation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# Known shapes plus a plain dict for callers with bespoke context.
AuditMetadata = Union[RequestMetadata, AuthEventMetadata, Dict[str, Any]]


def metadata_to_dict(metadata: Optional[AuditMetadata]) -> Dict[str, Any]:
    if metadata is None:
        return {}
    if isinstance(metadata, dict):
        return dict(metadata)
    return metadata.to_dict()


@dataclass(frozen=True)
class AuditRecord:
    """
    Immutable, append-only fact about one action.
    `id` and `created_at` are assigned by the repository on save.
    """

    action: AuditAction
    resource: str
    outcome: AuditOutcome
    network: NetworkContext = field(default_factory=NetworkContext)
    actor_id: Optional[str] = None
    acting_entity_id: Optional[str] = None
    resource_id: Optional[str] = None
    changes: Optional[AuditChanges] = None
    metadata: Optional[AuditMetadata] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for storage and JSON responses."""
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "acting_entity_id": self.acting_entity_id,
            "action": self.action.value,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "outcome": self.outcome.value,
            "ip_address": self.network.ip_address,
            "user_agent": self.network.user_agent,
            "changes": self.changes.to_dict() if self.changes else None,
            "metadata": metadata_to_dict(self.metadata),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class AuditLogFilter:
    """Filterable retrieval for reporting. Results are newest first."""

    actor_id: Optional[str] = None
    action: Optional[AuditAction] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    acting_entity_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: int = 100

    def matches(self, record: AuditRecord) -> bool:
        if self.actor_id is not None and record.actor_id != self.actor_id:
            return False
        if self.action is not None and record.action != self.action:
            return False
        if self.resource is not None and record.resource != self.resource:
            return False
        if self.resource_id is not None and record.resource_id != self.resource_id:
            return False
        if self.acting_entity_id is not None and record.acting_entity_id != self.acting_entity_id:
            return False
        if self.start is not None and (record.created_at is None or record.created_at < self.start):
            return False
        if self.end is not None and (record.created_at is None or record.created_at > self.end):
            return False
        return True
