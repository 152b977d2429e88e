"""Aggregate service health: database reachability and audit write backlog."""

from typing import Any, Awaitable, Callable


class HealthMonitor:
    """
    Aggregates health checks. All checks injected; no global state.
    Returns dict with status per component and overall.
    """

    def __init__(
        self,
        db_health: Callable[[], Awaitable[dict[str, Any]]] | None = None,
        audit_backlog: Callable[[], int] | None = None,
    ) -> None:
        self._db = db_health
        self._backlog = audit_backlog

    async def system_health(self) -> dict[str, Any]:
        """Return aggregated health: db, audit_backlog, overall status."""
        out: dict[str, Any] = {
            "db": {"status": "unknown"},
            "audit_backlog": None,
            "status": "ok",
        }
        if self._db:
            try:
                out["db"] = await self._db()
            except Exception as e:
                out["db"] = {"status": "error", "error": str(e)}
                out["status"] = "degraded"
        if self._backlog:
            try:
                out["audit_backlog"] = self._backlog()
            except Exception:
                out["audit_backlog"] = None
                out["status"] = "degraded"
        return out
