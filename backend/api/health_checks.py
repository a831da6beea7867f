from __future__ import annotations

import functools
import os

from dataclasses import dataclass
from typing import Callable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.core.files.storage import default_storage
from django.db import connections
from django.db.migrations.executor import MigrationExecutor


def _env_truthy(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "y", "on"}


def _backend_name(obj) -> str:
    return f"{obj.__class__.__module__}.{obj.__class__.__name__}"


@dataclass(frozen=True)
class HealthStatus:
    ok: bool
    payload: dict

    @classmethod
    def passed(cls, **details) -> "HealthStatus":
        return cls(ok=True, payload={"ok": True, **details})

    @classmethod
    def failed(cls, error: str, **details) -> "HealthStatus":
        return cls(ok=False, payload={"ok": False, "error": error, **details})


def _reports_errors(check: Callable[[], HealthStatus]) -> Callable[[], HealthStatus]:
    # A failing dependency degrades the health payload; it must not turn /health into a 500.
    @functools.wraps(check)
    def run() -> HealthStatus:
        try:
            return check()
        except Exception as exc:
            return HealthStatus.failed(str(exc))

    return run


@_reports_errors
def _check_db() -> HealthStatus:
    with connections["default"].cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return HealthStatus.passed()


@_reports_errors
def _check_migrations() -> HealthStatus:
    executor = MigrationExecutor(connections["default"])
    pending = len(executor.migration_plan(executor.loader.graph.leaf_nodes()))
    return HealthStatus(ok=pending == 0, payload={"ok": pending == 0, "pending": pending})


@_reports_errors
def _check_storage() -> HealthStatus:
    # Book images live here; only instantiate the backend, remote listing calls are too slow.
    return HealthStatus.passed(backend=_backend_name(default_storage))


@_reports_errors
def _check_relay() -> HealthStatus:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return HealthStatus.failed("no channel layer configured")

    # One event through the layer and back; with Redis that is a network round trip.
    channel = async_to_sync(channel_layer.new_channel)()
    async_to_sync(channel_layer.send)(channel, {"type": "health.ping"})
    received = async_to_sync(channel_layer.receive)(channel)
    ok = received.get("type") == "health.ping"
    return HealthStatus(ok=ok, payload={"ok": ok, "backend": _backend_name(channel_layer)})


# name -> (env flag enabling it, check). These are skipped unless their flag is set.
OPTIONAL_CHECKS: dict[str, tuple[str, Callable[[], HealthStatus]]] = {
    "migrations": ("HEALTH_CHECK_MIGRATIONS", _check_migrations),
    "storage": ("HEALTH_CHECK_STORAGE", _check_storage),
    "relay": ("HEALTH_CHECK_RELAY", _check_relay),
}


def build_health_payload() -> tuple[dict, bool]:
    """Return (payload, overall_ok).

    The database is always checked. Every other dependency appears in the
    payload either with its result or as ``{"skipped": true}``.
    """

    db = _check_db()
    payload: dict = {"db": db.payload}
    overall_ok = db.ok

    for name, (flag, check) in OPTIONAL_CHECKS.items():
        if not _env_truthy(flag, default=False):
            payload[name] = {"skipped": True}
            continue
        result = check()
        payload[name] = result.payload
        overall_ok = overall_ok and result.ok

    payload["status"] = "ok" if overall_ok else "degraded"
    return payload, overall_ok
