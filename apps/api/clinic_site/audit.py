from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from clinic_site.context import get_actor_id, get_correlation_id


@dataclass(frozen=True, slots=True)
class AuditEntry:
    actor_user_id: str | None
    entity_type: str
    entity_id: str
    action: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    correlation_id: str | None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


AUDIT_HISTORY_LIMIT = 1000

# most recent entries only
audit_entries: deque[AuditEntry] = deque(maxlen=AUDIT_HISTORY_LIMIT)


def record(
    entity_type: str,
    entity_id: str,
    action: str,
    *,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    actor_user_id: str | None = None,
) -> AuditEntry:
    """Append a change to the in-process audit trail.

    The actor and correlation id default to the ones bound to the current request.
    """
    entry = AuditEntry(
        actor_user_id=actor_user_id or get_actor_id(),
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        before=before,
        after=after,
        correlation_id=get_correlation_id(),
    )
    audit_entries.append(entry)
    return entry
