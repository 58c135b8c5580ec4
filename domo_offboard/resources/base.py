"""Base classes shared by every resource kind handler."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar

import structlog

from domo_offboard.config import DeploymentConfig

if TYPE_CHECKING:
    from domo_offboard.client import DomoClient
    from domo_offboard.pagination import Paginator
    from domo_offboard.users import UserDirectory

logger = structlog.get_logger(__name__)


class TransferStatus(str, Enum):
    """Outcome written to the audit log for one resource."""

    TRANSFERRED = "TRANSFERRED"
    NOT_TRANSFERRED = "NOT_TRANSFERRED"


class TransferScope(str, Enum):
    """When a kind's mutation runs relative to its enumeration.

    PAGE transfers each page as soon as it is fetched. RESULT_SET enumerates
    every page first, then transfers in page-sized chunks; used when the
    listing filters on the current owner, so that reassigning one page cannot
    shift the offsets of the next.
    """

    PAGE = "PAGE"
    RESULT_SET = "RESULT_SET"


@dataclass(slots=True)
class ResourceRef:
    """Minimal identity needed to re-query and mutate one resource."""

    id: str
    kind: str
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(slots=True)
class TransferOutcome:
    """Result of transferring one resource."""

    status: TransferStatus
    note: str | None = None

    @property
    def transferred(self) -> bool:
        return self.status is TransferStatus.TRANSFERRED


@dataclass(slots=True)
class Cursor:
    """Pagination position for one kind's listing."""

    offset: int = 0
    page_size: int | None = None
    token: str | None = None

    @property
    def page_number(self) -> int:
        """1-based page number for listings that page by number."""
        if not self.page_size:
            return 1
        return self.offset // self.page_size + 1


@dataclass(slots=True)
class Page:
    """One fetched listing page.

    `fetched` is the number of rows the backend returned before any
    client-side filtering; termination is decided on it, not on `items`.
    """

    items: list[ResourceRef]
    fetched: int | None = None
    next_token: str | None = None

    @property
    def raw_count(self) -> int:
        return self.fetched if self.fetched is not None else len(self.items)


@dataclass(frozen=True, slots=True)
class RequestTemplate:
    """Declarative request shape with substitution points.

    `path` is formatted with str.format. In `body` and `params`, any string
    that is exactly `{name}` is replaced by the value itself (keeping its
    type); other strings are left untouched so literal braces such as
    GraphQL documents survive.
    """

    method: str
    path: str
    body: Any = None
    params: dict[str, Any] | None = None

    def render(self, **values: Any) -> tuple[str, str, Any, dict[str, Any] | None]:
        path = self.path.format(**values)
        body = _substitute(self.body, values)
        params = _substitute(self.params, values) if self.params else None
        return self.method, path, body, params


def _substitute(template: Any, values: dict[str, Any]) -> Any:
    if isinstance(template, str):
        if template.startswith("{") and template.endswith("}"):
            key = template[1:-1]
            if key in values:
                return values[key]
        return template
    if isinstance(template, dict):
        return {k: _substitute(v, values) for k, v in template.items()}
    if isinstance(template, list):
        return [_substitute(v, values) for v in template]
    return template


async def bounded_gather(semaphore: asyncio.Semaphore, calls: list[Any]) -> list[Any]:
    """Await `calls` concurrently, at most as many at once as `semaphore` allows."""

    async def run(call: Any) -> Any:
        async with semaphore:
            return await call

    return await asyncio.gather(*(run(call) for call in calls))


def principal_id(value: Any) -> Any:
    """Numeric principal ids are sent as integers, anything else unchanged."""
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


@dataclass
class MigrationContext:
    """Everything a handler needs for one (source, new owner) run."""

    client: "DomoClient"
    source_user_id: Any
    new_owner_id: Any
    deployment: DeploymentConfig
    users: "UserDirectory"
    max_concurrent: int = 5
    _semaphore: asyncio.Semaphore | None = field(default=None, repr=False)
    _source_display_name: str | None = field(default=None, repr=False)
    _display_name_lock: asyncio.Lock | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.source_user_id = principal_id(self.source_user_id)
        self.new_owner_id = principal_id(self.new_owner_id)

    @property
    def semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        return self._semaphore

    def template_values(self) -> dict[str, Any]:
        """Substitution values common to every request of the run."""
        return {
            "owner_id": self.source_user_id,
            "owner_id_str": str(self.source_user_id),
            "owner_term": f"{self.source_user_id}:USER",
            "new_owner_id": self.new_owner_id,
            "new_owner_id_str": str(self.new_owner_id),
        }

    async def source_display_name(self) -> str:
        """Display name of the departing user, looked up once per run."""
        if self._display_name_lock is None:
            self._display_name_lock = asyncio.Lock()
        async with self._display_name_lock:
            if self._source_display_name is None:
                user = await self.users.get_user(self.source_user_id)
                self._source_display_name = (
                    user.get("displayName") or user.get("userName") or str(self.source_user_id)
                )
        return self._source_display_name


class ResourceKind(ABC):
    """Descriptor for one kind of Domo content.

    Subclasses declare the listing request and how to read items out of the
    response; transfer behavior comes from PerItemResourceKind or
    BatchResourceKind. Instances hold no per-run state.
    """

    kind_tag: ClassVar[str]
    page_size: ClassVar[int | None] = 100
    supports_transfer: ClassVar[bool] = True
    transfer_scope: ClassVar[TransferScope] = TransferScope.RESULT_SET
    unsupported_note: ClassVar[str] = "Ownership of this kind cannot be transferred"
    token_paged: ClassVar[bool] = False

    list_request: ClassVar[RequestTemplate | None] = None
    items_path: ClassVar[tuple[str, ...]] = ()
    id_field: ClassVar[str] = "id"

    def __init__(self) -> None:
        self._logger = logger.bind(kind=self.kind_tag)

    def paginator(
        self, context: MigrationContext, cancel_event: asyncio.Event | None = None
    ) -> "Paginator":
        """Create a fresh paginator over this kind for the context's source user."""
        from domo_offboard.pagination import Paginator

        return Paginator(
            lambda cursor: self.list_page(context, cursor),
            page_size=self.page_size,
            token_paged=self.token_paged,
            kind_tag=self.kind_tag,
            cancel_event=cancel_event,
        )

    def list_values(self, context: MigrationContext, cursor: Cursor) -> dict[str, Any]:
        values = context.template_values()
        values.update(
            offset=cursor.offset,
            limit=cursor.page_size,
            page_number=cursor.page_number,
            after=cursor.token,
        )
        return values

    async def list_page(self, context: MigrationContext, cursor: Cursor) -> Page:
        """Fetch one listing page of resources owned by the source user."""
        if self.list_request is None:
            raise NotImplementedError(f"{self.kind_tag} has no listing request")
        method, path, body, params = self.list_request.render(
            **self.list_values(context, cursor)
        )
        response = await context.client.request(method, path, body, params=params)
        rows = self.extract_items(response)
        items = [self.to_ref(row) for row in rows if self.owns(context, row)]
        return Page(items=items, fetched=len(rows))

    def extract_items(self, response: Any) -> list[dict[str, Any]]:
        """Walk `items_path` into the response; missing keys mean an empty page."""
        data = response
        for key in self.items_path:
            if not isinstance(data, dict):
                return []
            data = data.get(key)
        if not isinstance(data, list):
            return []
        return data

    def owns(self, context: MigrationContext, row: dict[str, Any]) -> bool:
        """Client-side owner filter for listings the backend cannot filter."""
        return True

    def to_ref(self, row: dict[str, Any]) -> ResourceRef:
        return ResourceRef(id=str(row[self.id_field]), kind=self.kind_tag, attributes=row)

    def skip_reason(self, context: MigrationContext, ref: ResourceRef) -> str | None:
        """Reason this particular resource must not be mutated, if any."""
        return None

    async def transfer(
        self, context: MigrationContext, refs: list[ResourceRef]
    ) -> list[tuple[ResourceRef, TransferOutcome]]:
        """Transfer ownership of `refs` to the context's new owner.

        Returns one outcome per ref, in the order given. Unsupported kinds
        return NOT_TRANSFERRED for every ref without issuing any request.
        """
        if not refs:
            return []
        if not self.supports_transfer:
            outcome = TransferOutcome(TransferStatus.NOT_TRANSFERRED, self.unsupported_note)
            return [(ref, outcome) for ref in refs]
        return await self._transfer(context, refs)

    @abstractmethod
    async def _transfer(
        self, context: MigrationContext, refs: list[ResourceRef]
    ) -> list[tuple[ResourceRef, TransferOutcome]]:
        pass

    def describe(self) -> dict[str, Any]:
        """Static description used by the CLI."""
        return {
            "kind_tag": self.kind_tag,
            "page_size": self.page_size,
            "shape": self.shape,
            "scope": self.transfer_scope.value,
            "supports_transfer": self.supports_transfer,
        }

    @property
    def shape(self) -> str:
        return "none"


class PerItemResourceKind(ResourceKind):
    """Kinds whose backend has no bulk endpoint: one mutation call per resource."""

    mutation: ClassVar[RequestTemplate | None] = None

    @property
    def shape(self) -> str:
        return "per-item" if self.supports_transfer else "none"

    def mutation_values(self, context: MigrationContext, ref: ResourceRef) -> dict[str, Any]:
        values = context.template_values()
        values["id"] = ref.id
        values["native_id"] = principal_id(ref.id)
        return values

    async def transfer_one(self, context: MigrationContext, ref: ResourceRef) -> None:
        """Issue the ownership mutation for one resource, then any follow-up calls."""
        if self.mutation is None:
            raise NotImplementedError(f"{self.kind_tag} has no mutation request")
        method, path, body, params = self.mutation.render(
            **self.mutation_values(context, ref)
        )
        await context.client.request(method, path, body, params=params)
        await self.after_transfer(context, ref)

    async def after_transfer(self, context: MigrationContext, ref: ResourceRef) -> None:
        """Follow-up calls that keep the resource consistent after reassignment."""
        return None

    async def _transfer(
        self, context: MigrationContext, refs: list[ResourceRef]
    ) -> list[tuple[ResourceRef, TransferOutcome]]:
        outcomes = await asyncio.gather(*(self._transfer_guarded(context, ref) for ref in refs))
        return list(zip(refs, outcomes))

    async def _transfer_guarded(
        self, context: MigrationContext, ref: ResourceRef
    ) -> TransferOutcome:
        reason = self.skip_reason(context, ref)
        if reason:
            self._logger.info("Not transferring resource", resource_id=ref.id, reason=reason)
            return TransferOutcome(TransferStatus.NOT_TRANSFERRED, reason)

        async with context.semaphore:
            try:
                await self.transfer_one(context, ref)
            except Exception as e:
                self._logger.error(
                    "Failed to transfer resource",
                    resource_id=ref.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return TransferOutcome(
                    TransferStatus.NOT_TRANSFERRED, f"Transfer failed: {e}"
                )

        self._logger.debug("Transferred resource", resource_id=ref.id)
        return TransferOutcome(TransferStatus.TRANSFERRED)


class BatchResourceKind(ResourceKind):
    """Kinds with a bulk endpoint: one mutation call carries every id in the batch.

    The bulk endpoints report no per-item results, so one call's success or
    failure is applied to every id it carried.
    """

    mutation: ClassVar[RequestTemplate | None] = None

    @property
    def shape(self) -> str:
        return "batch"

    def batch_values(
        self, context: MigrationContext, refs: list[ResourceRef]
    ) -> dict[str, Any]:
        values = context.template_values()
        values["ids"] = [ref.id for ref in refs]
        values["native_ids"] = [principal_id(ref.id) for ref in refs]
        return values

    async def transfer_batch(self, context: MigrationContext, refs: list[ResourceRef]) -> None:
        if self.mutation is None:
            raise NotImplementedError(f"{self.kind_tag} has no mutation request")
        method, path, body, params = self.mutation.render(**self.batch_values(context, refs))
        await context.client.request(method, path, body, params=params)

    async def _transfer(
        self, context: MigrationContext, refs: list[ResourceRef]
    ) -> list[tuple[ResourceRef, TransferOutcome]]:
        results: dict[int, TransferOutcome] = {}
        eligible: list[ResourceRef] = []
        for index, ref in enumerate(refs):
            reason = self.skip_reason(context, ref)
            if reason:
                results[index] = TransferOutcome(TransferStatus.NOT_TRANSFERRED, reason)
            else:
                eligible.append(ref)

        outcome = TransferOutcome(TransferStatus.TRANSFERRED)
        if eligible:
            try:
                await self.transfer_batch(context, eligible)
                self._logger.debug("Transferred batch", batch_size=len(eligible))
            except Exception as e:
                self._logger.error(
                    "Failed to transfer batch",
                    batch_size=len(eligible),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                outcome = TransferOutcome(
                    TransferStatus.NOT_TRANSFERRED, f"Batch transfer failed: {e}"
                )

        return [(ref, results.get(index, outcome)) for index, ref in enumerate(refs)]
