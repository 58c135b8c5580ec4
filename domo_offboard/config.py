"""Configuration models and environment variable parsing for Domo offboarding."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file if it exists
load_dotenv()

AUDIT_BATCH_LIMIT = 50


class DomoInstanceConfig(BaseModel):
    """Connection settings for a Domo instance."""

    instance: str = Field(..., description="Instance name or URL (e.g. acme)")
    access_token: str = Field(..., description="Domo developer access token")

    @field_validator("instance")
    def normalize_instance(cls, v: str) -> str:
        """Normalize `acme`, `acme.domo.com` or a full URL to https://acme.domo.com."""
        if not v or v.strip() == "":
            raise ValueError("Domo instance cannot be empty")
        host = v.strip().rstrip("/")
        for prefix in ("https://", "http://"):
            if host.startswith(prefix):
                host = host[len(prefix) :]
        host = host.split("/")[0]
        if not host.endswith(".domo.com"):
            host = f"{host.split('.')[0]}.domo.com"
        return f"https://{host}"

    @field_validator("access_token")
    def validate_access_token(cls, v: str) -> str:
        """Validate that the access token is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Access token cannot be empty")
        return v.strip()

    @property
    def base_url(self) -> str:
        return self.instance


class MigrationConfig(BaseModel):
    """Configuration for transfer behavior."""

    max_concurrent: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum concurrent per-item mutation calls within one kind",
    )
    concurrent_kinds: bool = Field(
        default=False,
        description="Run resource kinds concurrently instead of one after another",
    )
    retry_attempts: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Number of retry attempts for transient request failures",
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0.1,
        le=30.0,
        description="Initial delay between retries in seconds",
    )
    timeout_seconds: float = Field(
        default=30.0, gt=0, description="Per-request timeout in seconds"
    )
    rate_limit_per_minute: int = Field(
        default=600, ge=1, description="Maximum requests per minute"
    )
    audit_batch_size: int = Field(
        default=AUDIT_BATCH_LIMIT,
        ge=1,
        le=AUDIT_BATCH_LIMIT,
        description="Audit records appended per upload",
    )


class DeploymentConfig(BaseModel):
    """Identifiers resolved when the tool is installed into an instance."""

    audit_log_dataset_id: str = Field(
        ..., description="Dataset receiving the object transfer log"
    )
    scheduled_reports_dataset_id: str | None = Field(
        default=None,
        description="DomoStats scheduled reports dataset used to find report owners",
    )
    service_account_id: int | None = Field(
        default=None,
        description="Principal recorded as assigner when re-assigning project tasks",
    )
    tag_provenance: bool = Field(
        default=True,
        description="Tag transferred datasets with 'From <previous owner>'",
    )

    @field_validator("audit_log_dataset_id")
    def validate_audit_dataset(cls, v: str) -> str:
        """Validate that the audit dataset id is not empty."""
        if not v or v.strip() == "":
            raise ValueError("Audit log dataset id cannot be empty")
        return v.strip()


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or text)")

    model_config = {"validate_assignment": True}

    @field_validator("level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator("format")
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "text"}:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class Config(BaseModel):
    """Main configuration class for the offboarding tool."""

    domo: DomoInstanceConfig
    deployment: DeploymentConfig
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    kinds: list[str] = Field(
        default=["all"], description="Resource kind tags to transfer"
    )

    model_config = {"validate_assignment": True}

    @field_validator("kinds")
    def normalize_kinds(cls, v: list[str]) -> list[str]:
        """Upper-case kind tags; 'all' stays lower case."""
        kinds = [k.strip() for k in v if k and k.strip()]
        if not kinds:
            return ["all"]
        return ["all" if k.lower() == "all" else k.upper() for k in kinds]

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables.

        Returns:
            Config instance populated from environment variables.

        Raises:
            ValueError: If required environment variables are missing.
        """
        instance = os.getenv("DOMO_INSTANCE")
        access_token = os.getenv("DOMO_ACCESS_TOKEN")
        audit_dataset_id = os.getenv("OFFBOARD_AUDIT_DATASET_ID")

        if not instance:
            raise ValueError("DOMO_INSTANCE environment variable is required")
        if not access_token:
            raise ValueError("DOMO_ACCESS_TOKEN environment variable is required")
        if not audit_dataset_id:
            raise ValueError(
                "OFFBOARD_AUDIT_DATASET_ID environment variable is required"
            )

        service_account_id = os.getenv("OFFBOARD_SERVICE_ACCOUNT_ID")

        return cls(
            domo=DomoInstanceConfig(instance=instance, access_token=access_token),
            deployment=DeploymentConfig(
                audit_log_dataset_id=audit_dataset_id,
                scheduled_reports_dataset_id=os.getenv("OFFBOARD_REPORTS_DATASET_ID"),
                service_account_id=int(service_account_id)
                if service_account_id
                else None,
                tag_provenance=_env_flag("OFFBOARD_TAG_PROVENANCE", True),
            ),
            migration=MigrationConfig(
                max_concurrent=int(os.getenv("OFFBOARD_MAX_CONCURRENT", "5")),
                concurrent_kinds=_env_flag("OFFBOARD_CONCURRENT_KINDS", False),
                retry_attempts=int(os.getenv("OFFBOARD_RETRY_ATTEMPTS", "3")),
                retry_delay=float(os.getenv("OFFBOARD_RETRY_DELAY", "1.0")),
            ),
            logging=LoggingConfig(
                level=os.getenv("LOG_LEVEL", "INFO"),
                format=os.getenv("LOG_FORMAT", "json"),
            ),
        )

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        """Create configuration from a YAML or JSON file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config instance populated from the file

        Raises:
            ValueError: If the file format is unsupported or required fields are missing
            FileNotFoundError: If the configuration file doesn't exist
        """
        import json

        import yaml

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        file_extension = config_path.suffix.lower()

        try:
            if file_extension == ".json":
                with open(config_path) as f:
                    config_data = json.load(f)
            elif file_extension in [".yaml", ".yml"]:
                with open(config_path) as f:
                    config_data = yaml.safe_load(f)
            else:
                raise ValueError(
                    f"Unsupported configuration file format: {file_extension}. Supported formats: .json, .yaml, .yml"
                )

            return cls(**(config_data or {}))

        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}") from e
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}") from e
        except ValueError:
            raise
        except Exception as e:
            raise ValueError(f"Failed to load configuration file: {e}") from e

    def selects_kind(self, kind_tag: str) -> bool:
        """Whether the given kind tag is selected for this run."""
        return "all" in self.kinds or kind_tag in self.kinds


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}
