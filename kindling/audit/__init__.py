"""Audit: request classification, redaction, recording, manual events. No FastAPI."""

from kindling.audit.audit_logger import AuditLogger
from kindling.audit.classifier import Classification, classify_request, is_excluded_path
from kindling.audit.dispatcher import AuditDispatcher
from kindling.audit.models import AuditAction, AuditOutcome, AuditRecord
from kindling.audit.recorder import AuditRecorder, should_persist
from kindling.audit.redaction import REDACTION_MARKER, redact

__all__ = [
    "AuditLogger",
    "AuditDispatcher",
    "AuditRecorder",
    "AuditAction",
    "AuditOutcome",
    "AuditRecord",
    "Classification",
    "classify_request",
    "is_excluded_path",
    "should_persist",
    "redact",
    "REDACTION_MARKER",
]
