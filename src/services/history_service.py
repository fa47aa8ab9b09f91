"""Order history (audit trail) recording."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from src.core.unit_of_work import UnitOfWork

SYSTEM_ACTOR = "system"


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def record_history(
    unit: UnitOfWork,
    order_id: str,
    modifier_id: str | None,
    changed_fields: dict[str, Any],
) -> dict[str, Any]:
    """Stage one history row for a mutation of ``order_id``.

    History rows are only ever inserted; they are never updated or deleted.

    Args:
        unit: Unit of work the mutation belongs to.
        order_id: Order being changed.
        modifier_id: Acting user, or None for the system.
        changed_fields: Columns that changed and their new values.

    Returns:
        dict: The staged history row.
    """
    return unit.insert(
        "order_histories",
        {
            "id": str(uuid4()),
            "order_id": order_id,
            "modifier_id": str(modifier_id) if modifier_id else SYSTEM_ACTOR,
            "changed_fields": {key: _plain(value) for key, value in changed_fields.items()},
            "created_at": datetime.now(timezone.utc).isoformat(),
        },
    )
