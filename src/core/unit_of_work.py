"""Staged writes applied together in a single database transaction."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class UnitOfWork:
    """Ordered insert/update operations for one order transition.

    Nothing touches the database until the owning repository commits the
    unit. An update may carry ``match`` columns; if the row no longer
    matches at commit time the whole unit is aborted.

    ``inserted`` and ``updates_for`` are read-only views over the staged
    operations, for inspecting a unit before it is committed.
    """

    operations: list[dict[str, Any]] = field(default_factory=list)

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Stage a row insert and return the row."""
        self.operations.append({"op": "insert", "table": table, "values": row})
        return row

    def update(
        self,
        table: str,
        row_id: str,
        values: dict[str, Any],
        match: dict[str, Any] | None = None,
    ) -> None:
        """Stage an update of one row by id."""
        self.operations.append(
            {
                "op": "update",
                "table": table,
                "id": row_id,
                "values": values,
                "match": match or {},
            }
        )

    def inserted(self, table: str) -> list[dict[str, Any]]:
        """Rows staged for insert into ``table``."""
        return [op["values"] for op in self.operations if op["op"] == "insert" and op["table"] == table]

    def updates_for(self, table: str, row_id: str) -> dict[str, Any]:
        """Merged values staged for one row."""
        merged: dict[str, Any] = {}
        for op in self.operations:
            if op["op"] == "update" and op["table"] == table and op["id"] == row_id:
                merged.update(op["values"])
        return merged

    def __len__(self) -> int:
        return len(self.operations)
