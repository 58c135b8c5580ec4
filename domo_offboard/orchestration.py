"""Migration orchestrator for moving a departing user's content to a new owner."""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from domo_offboard.audit import AuditLogger
from domo_offboard.client import DomoClient
from domo_offboard.config import Config
from domo_offboard.exceptions import EnumerationError, TransferError
from domo_offboard.resources import build_registry, validate_kind_tags
from domo_offboard.resources.base import (
    MigrationContext,
    ResourceKind,
    ResourceRef,
    TransferOutcome,
    TransferScope,
    TransferStatus,
)
from domo_offboard.users import UserDirectory

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class KindResult:
    """What happened to one kind during a run."""

    kind_tag: str
    discovered: int = 0
    transferred: int = 0
    not_transferred: int = 0
    pages: int = 0
    cancelled: bool = False
    error: str | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def tally(self, outcomes: list[tuple[ResourceRef, TransferOutcome]]) -> None:
        for _, outcome in outcomes:
            if outcome.transferred:
                self.transferred += 1
            else:
                self.not_transferred += 1


@dataclass(slots=True)
class MigrationRun:
    """In-memory summary of one transfer_content call.

    The audit log is the durable record; this only exists for the caller.
    """

    source_user_id: Any
    new_owner_id: Any
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    kinds: list[KindResult] = field(default_factory=list)
    cancelled: bool = False
    request_stats: dict[str, Any] = field(default_factory=dict)

    @property
    def discovered(self) -> int:
        return sum(k.discovered for k in self.kinds)

    @property
    def transferred(self) -> int:
        return sum(k.transferred for k in self.kinds)

    @property
    def not_transferred(self) -> int:
        return sum(k.not_transferred for k in self.kinds)

    @property
    def failed_kinds(self) -> list[KindResult]:
        return [k for k in self.kinds if not k.succeeded]

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_user_id": self.source_user_id,
            "new_owner_id": self.new_owner_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "cancelled": self.cancelled,
            "request_stats": self.request_stats,
            "summary": {
                "discovered": self.discovered,
                "transferred": self.transferred,
                "not_transferred": self.not_transferred,
                "failed_kinds": [k.kind_tag for k in self.failed_kinds],
            },
            "kinds": [
                {
                    "kind_tag": k.kind_tag,
                    "discovered": k.discovered,
                    "transferred": k.transferred,
                    "not_transferred": k.not_transferred,
                    "pages": k.pages,
                    "cancelled": k.cancelled,
                    "error": k.error,
                    "duration_seconds": round(k.duration_seconds, 3),
                }
                for k in self.kinds
            ],
        }


class MigrationOrchestrator:
    """Runs every registered resource kind for one (source, new owner) pair.

    Handles:
    - Enumeration and transfer per kind, in registry order or concurrently
    - Isolation of failures at the kind boundary
    - Audit records for every attempted transfer
    - Cooperative cancellation between kinds, pages and transfer chunks
    """

    def __init__(
        self,
        client: DomoClient,
        config: Config,
        kinds: list[ResourceKind] | None = None,
        audit_logger: AuditLogger | None = None,
        users: UserDirectory | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: Connected Domo client.
            config: Run configuration.
            kinds: Kind handlers to run; defaults to the full registry filtered
                by `config.kinds`.
            audit_logger: Audit sink; defaults to the configured log dataset.
            users: User directory; defaults to one over `client`.
        """
        self.client = client
        self.config = config
        if kinds is None:
            validate_kind_tags(config.kinds)
            kinds = [
                kind
                for kind in build_registry(config.deployment)
                if config.selects_kind(kind.kind_tag)
            ]
        self.kinds = kinds
        self.audit = audit_logger or AuditLogger(
            client,
            config.deployment.audit_log_dataset_id,
            batch_size=config.migration.audit_batch_size,
        )
        self.users = users or UserDirectory(client, config.migration.max_concurrent)
        self._cancel_event = asyncio.Event()
        self._logger = logger.bind(orchestrator=True)

    def cancel(self) -> None:
        """Stop issuing mutations after the current page or chunk."""
        self._logger.warning("Cancellation requested")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    async def transfer_content(self, source_user_id: Any, new_owner_id: Any) -> MigrationRun:
        """Transfer everything `source_user_id` owns to `new_owner_id`.

        A kind that fails is logged and reported in the returned summary;
        the remaining kinds still run. Re-running the same pair is safe:
        already transferred resources are reassigned to the same owner.

        Returns:
            Summary of the run.
        """
        context = MigrationContext(
            client=self.client,
            source_user_id=source_user_id,
            new_owner_id=new_owner_id,
            deployment=self.config.deployment,
            users=self.users,
            max_concurrent=self.config.migration.max_concurrent,
        )
        run = MigrationRun(context.source_user_id, context.new_owner_id)
        self._logger.info(
            "Starting content transfer",
            source_user_id=context.source_user_id,
            new_owner_id=context.new_owner_id,
            kinds=len(self.kinds),
            concurrent_kinds=self.config.migration.concurrent_kinds,
        )

        try:
            if self.config.migration.concurrent_kinds:
                run.kinds = list(
                    await asyncio.gather(*(self._run_kind(kind, context) for kind in self.kinds))
                )
            else:
                for kind in self.kinds:
                    if self.cancelled:
                        self._logger.info("Skipping remaining kinds", next_kind=kind.kind_tag)
                        break
                    run.kinds.append(await self._run_kind(kind, context))
        finally:
            await self.audit.flush()

        run.cancelled = self.cancelled
        run.finished_at = datetime.now(timezone.utc)
        self._logger.info(
            "Content transfer finished",
            discovered=run.discovered,
            transferred=run.transferred,
            not_transferred=run.not_transferred,
            failed_kinds=[k.kind_tag for k in run.failed_kinds],
            cancelled=run.cancelled,
        )
        return run

    async def _run_kind(self, kind: ResourceKind, context: MigrationContext) -> KindResult:
        """Process one kind; never raises."""
        result = KindResult(kind.kind_tag)
        kind_logger = self._logger.bind(kind=kind.kind_tag)
        start = time.monotonic()
        kind_logger.info("Processing kind")

        try:
            await self._process_kind(kind, context, result)
        except Exception as e:
            # An enumeration failure recorded earlier stays the primary cause.
            if result.error and result.error != str(e):
                result.error = f"{result.error}; {e}"
            else:
                result.error = str(e)
            kind_logger.error(
                "Kind failed",
                error=str(e),
                error_type=type(e).__name__,
                discovered=result.discovered,
                transferred=result.transferred,
            )
        finally:
            await self.audit.flush(kind.kind_tag)
            result.duration_seconds = time.monotonic() - start

        if result.succeeded:
            kind_logger.info(
                "Kind completed",
                discovered=result.discovered,
                transferred=result.transferred,
                not_transferred=result.not_transferred,
                cancelled=result.cancelled,
            )
        return result

    async def _process_kind(
        self, kind: ResourceKind, context: MigrationContext, result: KindResult
    ) -> None:
        paginator = kind.paginator(context, self._cancel_event)

        if kind.transfer_scope is TransferScope.PAGE:
            try:
                async for page in paginator.pages():
                    result.discovered += len(page.items)
                    await self._transfer_chunk(kind, context, page.items, result)
            finally:
                result.pages = paginator.fetch_count
                result.cancelled = paginator.cancelled
            return

        discovered: list[ResourceRef] = []
        try:
            async for page in paginator.pages():
                discovered.extend(page.items)
        except EnumerationError as e:
            # Whatever was found before the failing page is still moved and audited.
            result.error = str(e)
            result.discovered = len(discovered)
            result.pages = paginator.fetch_count
            await self._transfer_all(kind, context, discovered, result)
            raise

        result.discovered = len(discovered)
        result.pages = paginator.fetch_count
        if paginator.cancelled:
            result.cancelled = True
            return
        await self._transfer_all(kind, context, discovered, result)

    async def _transfer_all(
        self,
        kind: ResourceKind,
        context: MigrationContext,
        refs: list[ResourceRef],
        result: KindResult,
    ) -> None:
        chunk_size = kind.page_size or max(len(refs), 1)
        for start in range(0, len(refs), chunk_size):
            if self.cancelled:
                result.cancelled = True
                return
            await self._transfer_chunk(kind, context, refs[start : start + chunk_size], result)

    async def _transfer_chunk(
        self,
        kind: ResourceKind,
        context: MigrationContext,
        refs: list[ResourceRef],
        result: KindResult,
    ) -> None:
        if not refs:
            return
        try:
            outcomes = await kind.transfer(context, refs)
        except Exception as e:
            note = f"Transfer failed: {e}"
            outcomes = [
                (ref, TransferOutcome(TransferStatus.NOT_TRANSFERRED, note)) for ref in refs
            ]
            result.tally(outcomes)
            await self.audit.record_outcomes(
                context.source_user_id, context.new_owner_id, kind.kind_tag, outcomes
            )
            raise TransferError(note, kind_tag=kind.kind_tag) from e

        result.tally(outcomes)
        await self.audit.record_outcomes(
            context.source_user_id, context.new_owner_id, kind.kind_tag, outcomes
        )


async def transfer_content(
    source_user_id: Any,
    new_owner_id: Any,
    config: Config | None = None,
    kinds: list[ResourceKind] | None = None,
) -> MigrationRun:
    """Entry point: connect with `config` (or the environment) and run every kind.

    Args:
        source_user_id: Departing user.
        new_owner_id: User receiving ownership.
        config: Configuration; read from the environment when omitted.
        kinds: Optional explicit kind handlers.

    Returns:
        Summary of the run.
    """
    config = config or Config.from_env()
    async with DomoClient(config.domo, config.migration) as client:
        orchestrator = MigrationOrchestrator(client, config, kinds=kinds)
        return await orchestrator.transfer_content(source_user_id, new_owner_id)
