"""Webhook delivery of moderation notifications.

Moderator tooling subscribes to engine events (urgent reports, overdue
reports, outcomes, sanctions) by registering a URL.  Payloads are signed
with HMAC-SHA256 and POSTed via ``urllib.request``.

Storage is file-based JSON in ``~/.modengine/webhooks/``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import threading
import time
import urllib.request
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from modengine.moderation.errors import NotificationDeliveryError
from modengine.notifications.port import EVENTS, NotificationPort

_MAX_DELIVERIES = 1000


@dataclass
class Webhook:
    """A subscribed endpoint."""

    id: str
    url: str
    events: list[str] = field(default_factory=list)
    secret: str = ""
    active: bool = True
    created_at: str = ""


@dataclass
class WebhookDelivery:
    """Record of a single delivery attempt."""

    id: str
    webhook_id: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)
    response_status: int = 0
    error: str = ""
    success: bool = False
    delivered_at: str = ""
    duration_ms: int = 0


class WebhookNotifier(NotificationPort):
    """Notification port backed by registered webhooks."""

    def __init__(self, base_dir: Optional[Path] = None, timeout: float = 5.0) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path.home() / ".modengine" / "webhooks"
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._hooks_file = self._base_dir / "webhooks.json"
        self._deliveries_file = self._base_dir / "deliveries.json"
        self._timeout = timeout
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _load(self, path: Path) -> list[dict[str, Any]]:
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return []
        return data if isinstance(data, list) else []

    def _save(self, path: Path, data: list[dict[str, Any]]) -> None:
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def register(self, url: str, events: list[str], secret: str = "") -> Webhook:
        """Subscribe *url* to *events* and return the webhook."""
        unknown = [e for e in events if e not in EVENTS]
        if unknown:
            raise ValueError(f"Unknown events: {', '.join(unknown)}")
        wh = Webhook(
            id=uuid.uuid4().hex[:16],
            url=url,
            events=list(events),
            secret=secret,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self._lock:
            hooks = self._load(self._hooks_file)
            hooks.append(asdict(wh))
            self._save(self._hooks_file, hooks)
        return wh

    def list_webhooks(self) -> list[Webhook]:
        return [Webhook(**d) for d in self._load(self._hooks_file)]

    def remove(self, webhook_id: str) -> bool:
        with self._lock:
            hooks = self._load(self._hooks_file)
            kept = [d for d in hooks if d.get("id") != webhook_id]
            if len(kept) == len(hooks):
                return False
            self._save(self._hooks_file, kept)
        return True

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    @staticmethod
    def sign(body: bytes, secret: str) -> str:
        mac = hmac.new(secret.encode("utf-8"), body, hashlib.sha256)
        return f"sha256={mac.hexdigest()}"

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        hooks = [w for w in self.list_webhooks() if w.active and event in w.events]
        if not hooks:
            return

        deliveries = [self._deliver(wh, event, payload) for wh in hooks]
        with self._lock:
            history = self._load(self._deliveries_file)
            history.extend(asdict(d) for d in deliveries)
            self._save(self._deliveries_file, history[-_MAX_DELIVERIES:])

        failed = [d for d in deliveries if not d.success]
        if failed:
            raise NotificationDeliveryError(
                f"{len(failed)} of {len(deliveries)} webhook deliveries failed for {event}: "
                + "; ".join(d.error or f"HTTP {d.response_status}" for d in failed)
            )

    def _deliver(self, wh: Webhook, event: str, payload: dict[str, Any]) -> WebhookDelivery:
        body = json.dumps({"event": event, "payload": payload}, ensure_ascii=False).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Modengine-Event": event,
        }
        if wh.secret:
            headers["X-Modengine-Signature"] = self.sign(body, wh.secret)

        start = time.monotonic()
        status = 0
        error = ""
        try:
            req = urllib.request.Request(wh.url, data=body, headers=headers, method="POST")
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                status = resp.status
        except Exception as exc:
            error = str(exc)[:500]

        return WebhookDelivery(
            id=uuid.uuid4().hex[:16],
            webhook_id=wh.id,
            event=event,
            payload=payload,
            response_status=status,
            error=error,
            success=200 <= status < 300,
            delivered_at=datetime.now(timezone.utc).isoformat(),
            duration_ms=int((time.monotonic() - start) * 1000),
        )

    def get_deliveries(self, webhook_id: Optional[str] = None, limit: int = 100) -> list[WebhookDelivery]:
        """Return delivery records, newest first."""
        deliveries = [WebhookDelivery(**d) for d in self._load(self._deliveries_file)]
        if webhook_id:
            deliveries = [d for d in deliveries if d.webhook_id == webhook_id]
        deliveries.sort(key=lambda d: d.delivered_at, reverse=True)
        return deliveries[:limit]
