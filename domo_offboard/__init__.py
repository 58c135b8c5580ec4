"""Domo user offboarding.

Transfers ownership of everything a departing user owns to a successor and
records every attempt in an append-only audit dataset.
"""

__version__ = "0.1.0"

from domo_offboard.config import Config, MigrationConfig
from domo_offboard.orchestration import MigrationOrchestrator, transfer_content

__all__ = [
    "Config",
    "MigrationConfig",
    "MigrationOrchestrator",
    "__version__",
    "transfer_content",
]
