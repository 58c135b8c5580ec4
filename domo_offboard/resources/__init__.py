"""Resource kind handlers and the ordered kind registry."""

import structlog

from domo_offboard.config import DeploymentConfig
from domo_offboard.exceptions import ConfigurationError

from .base import (
    BatchResourceKind,
    MigrationContext,
    PerItemResourceKind,
    ResourceKind,
    ResourceRef,
    TransferOutcome,
    TransferScope,
    TransferStatus,
)
from .content import (
    AppKind,
    CardKind,
    DataAppKind,
    GroupKind,
    PageKind,
    ProjectKind,
    ProjectTaskKind,
)
from .data import (
    AccountKind,
    BeastModeKind,
    CollectionKind,
    DataflowKind,
    DatasetKind,
    FilesetKind,
    ReportScheduleKind,
)
from .datascience import AIProjectKind, ModelKind, WorkspaceKind
from .development import CodeEnginePackageKind, RepositoryKind
from .publish import PublicationKind, SubscriptionKind
from .social import AlertKind, GoalKind
from .workflows import ApprovalKind, HopperTaskKind, WorkflowModelKind

logger = structlog.get_logger(__name__)

# Run order. Tasks are found through the user's projects, so they move
# before the projects themselves.
KIND_CLASSES: tuple[type[ResourceKind], ...] = (
    DatasetKind,
    CardKind,
    AlertKind,
    WorkflowModelKind,
    HopperTaskKind,
    DataflowKind,
    DataAppKind,
    PageKind,
    ReportScheduleKind,
    GoalKind,
    GroupKind,
    CollectionKind,
    BeastModeKind,
    AccountKind,
    WorkspaceKind,
    CodeEnginePackageKind,
    FilesetKind,
    PublicationKind,
    SubscriptionKind,
    RepositoryKind,
    ApprovalKind,
    AppKind,
    ModelKind,
    AIProjectKind,
    ProjectTaskKind,
    ProjectKind,
)


def build_registry(
    deployment: DeploymentConfig | None = None,
    kind_classes: tuple[type[ResourceKind], ...] = KIND_CLASSES,
) -> list[ResourceKind]:
    """Instantiate the kind handlers in run order.

    Kinds that depend on deployment settings which are missing are left
    out. Kind tags are the audit log join key and must be unique.

    Raises:
        ConfigurationError: If two kinds share a tag.
    """
    kinds: list[ResourceKind] = []
    seen: set[str] = set()
    for kind_class in kind_classes:
        tag = kind_class.kind_tag
        if tag in seen:
            raise ConfigurationError(f"Duplicate resource kind tag: {tag}")
        seen.add(tag)

        if (
            kind_class is ReportScheduleKind
            and deployment is not None
            and not deployment.scheduled_reports_dataset_id
        ):
            logger.warning(
                "Scheduled reports dataset not configured; skipping kind", kind=tag
            )
            continue
        kinds.append(kind_class())
    return kinds


def validate_kind_tags(tags: list[str]) -> None:
    """Reject kind selections that name no registered kind.

    Raises:
        ConfigurationError: If any tag other than `all` is unknown.
    """
    known = {kind_class.kind_tag for kind_class in KIND_CLASSES}
    unknown = [tag for tag in tags if tag != "all" and tag not in known]
    if unknown:
        raise ConfigurationError(
            f"Unknown resource kind(s): {', '.join(unknown)}. "
            "Run `domo-offboard kinds` for the available tags"
        )


__all__ = [
    "KIND_CLASSES",
    "AIProjectKind",
    "AccountKind",
    "AlertKind",
    "AppKind",
    "ApprovalKind",
    "BatchResourceKind",
    "BeastModeKind",
    "CardKind",
    "CodeEnginePackageKind",
    "CollectionKind",
    "DataAppKind",
    "DataflowKind",
    "DatasetKind",
    "FilesetKind",
    "GoalKind",
    "GroupKind",
    "HopperTaskKind",
    "MigrationContext",
    "ModelKind",
    "PageKind",
    "PerItemResourceKind",
    "ProjectKind",
    "ProjectTaskKind",
    "PublicationKind",
    "ReportScheduleKind",
    "RepositoryKind",
    "ResourceKind",
    "ResourceRef",
    "SubscriptionKind",
    "TransferOutcome",
    "TransferScope",
    "TransferStatus",
    "WorkflowModelKind",
    "WorkspaceKind",
    "build_registry",
    "validate_kind_tags",
]
