"""Append-only audit log of every attempted ownership transfer."""

import asyncio
import csv
import io
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, Field

from domo_offboard.config import AUDIT_BATCH_LIMIT
from domo_offboard.resources.base import ResourceRef, TransferOutcome, TransferStatus

if TYPE_CHECKING:
    from domo_offboard.client import DomoClient

logger = structlog.get_logger(__name__)

# Column order of the object transfer log dataset. Existing deployments
# depend on it.
AUDIT_COLUMNS = ("userId", "newOwnerId", "type", "id", "date", "status", "notes")


class AuditRecord(BaseModel):
    """One row of the object transfer log."""

    source_user_id: str
    new_owner_id: str
    kind_tag: str
    resource_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: TransferStatus
    notes: str | None = None

    def to_csv_row(self) -> str:
        """Serialize as one CSV line without the trailing newline."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="")
        writer.writerow(
            [
                self.source_user_id,
                self.new_owner_id,
                self.kind_tag,
                self.resource_id,
                self.timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
                self.status.value,
                self.notes or "",
            ]
        )
        return buffer.getvalue()


class AuditLogger:
    """Batches audit rows per kind and appends them to the log dataset.

    Each kind gets its own buffer so concurrently running kinds never share a
    flushed batch. A batch is appended as soon as it reaches `batch_size`;
    `flush(kind_tag)` appends the final partial batch. Append failures are
    logged and the batch is dropped: the audit trail never aborts or retries
    a transfer.
    """

    def __init__(
        self,
        client: "DomoClient",
        dataset_id: str,
        batch_size: int = AUDIT_BATCH_LIMIT,
    ) -> None:
        if not 1 <= batch_size <= AUDIT_BATCH_LIMIT:
            raise ValueError(f"batch_size must be between 1 and {AUDIT_BATCH_LIMIT}")
        self.client = client
        self.dataset_id = dataset_id
        self.batch_size = batch_size
        self._buffers: dict[str, list[str]] = {}
        self._append_lock = asyncio.Lock()
        self.batches_written = 0
        self.batches_failed = 0
        self.records_written = 0
        self.records_dropped = 0
        self._logger = logger.bind(dataset_id=dataset_id)

    async def record(
        self,
        source_user_id: Any,
        new_owner_id: Any,
        kind_tag: str,
        resource_ids: Iterable[Any],
        status: TransferStatus,
        notes: str | None = None,
    ) -> None:
        """Buffer one row per resource id with the same status and notes."""
        rows = [
            AuditRecord(
                source_user_id=str(source_user_id),
                new_owner_id=str(new_owner_id),
                kind_tag=kind_tag,
                resource_id=str(resource_id),
                status=status,
                notes=notes,
            ).to_csv_row()
            for resource_id in resource_ids
        ]
        await self._buffer(kind_tag, rows)

    async def record_outcomes(
        self,
        source_user_id: Any,
        new_owner_id: Any,
        kind_tag: str,
        outcomes: Iterable[tuple[ResourceRef, TransferOutcome]],
    ) -> None:
        """Buffer one row per (resource, outcome) pair, keeping their order."""
        timestamp = datetime.now(timezone.utc)
        rows = [
            AuditRecord(
                source_user_id=str(source_user_id),
                new_owner_id=str(new_owner_id),
                kind_tag=kind_tag,
                resource_id=ref.id,
                timestamp=timestamp,
                status=outcome.status,
                notes=outcome.note,
            ).to_csv_row()
            for ref, outcome in outcomes
        ]
        await self._buffer(kind_tag, rows)

    async def flush(self, kind_tag: str | None = None) -> None:
        """Append any partial batch for one kind, or for every kind."""
        tags = [kind_tag] if kind_tag is not None else list(self._buffers)
        for tag in tags:
            rows = self._buffers.pop(tag, [])
            if rows:
                await self._append(tag, rows)

    def pending(self, kind_tag: str) -> int:
        """Number of buffered, not yet appended rows for a kind."""
        return len(self._buffers.get(kind_tag, []))

    async def _buffer(self, kind_tag: str, rows: list[str]) -> None:
        buffer = self._buffers.setdefault(kind_tag, [])
        for row in rows:
            buffer.append(row)
            if len(buffer) >= self.batch_size:
                batch = buffer[:]
                buffer.clear()
                await self._append(kind_tag, batch)

    async def _append(self, kind_tag: str, rows: list[str]) -> None:
        csv_text = "\n".join(rows) + "\n"
        async with self._append_lock:
            try:
                await self.client.append_csv(self.dataset_id, csv_text)
            except Exception as e:
                self.batches_failed += 1
                self.records_dropped += len(rows)
                self._logger.error(
                    "Failed to append audit batch",
                    kind=kind_tag,
                    batch_size=len(rows),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return

        self.batches_written += 1
        self.records_written += len(rows)
        self._logger.debug("Appended audit batch", kind=kind_tag, batch_size=len(rows))
