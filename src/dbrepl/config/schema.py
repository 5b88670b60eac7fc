"""Configuration schema using Pydantic models for YAML validation."""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class GroupingMode(str, Enum):
    """How objects of one kind are distributed over output files."""

    SINGLE = "single"  # One file per object (default)
    BY_GROUP = "byGroup"  # One file per owner group (schema)
    ALL = "all"  # One file for every object of the kind


class SpecialHandling(str, Enum):
    """Work items the scripting service must treat differently."""

    FILE_GROUPS = "file_groups"
    DATABASE_CONFIGURATION = "database_configuration"
    SECURITY_POLICY = "security_policy"
    DATA = "data"


class SourceType(str, Enum):
    """Supported database backends."""

    SQLSERVER = "sqlserver"


class ObjectKind(str, Enum):
    """Database object kinds that can be replicated."""

    # Infrastructure
    FILE_GROUP = "file_group"
    ROLE = "role"
    USER = "user"
    DATABASE_CONFIGURATION = "database_configuration"
    SCHEMA = "schema"

    # Sequences, partitioning, types
    SEQUENCE = "sequence"
    PARTITION_FUNCTION = "partition_function"
    PARTITION_SCHEME = "partition_scheme"
    USER_DEFINED_TYPE = "user_defined_type"
    XML_SCHEMA_COLLECTION = "xml_schema_collection"

    # Tables and their facets
    TABLE = "table"
    FOREIGN_KEY = "foreign_key"
    INDEX = "index"
    DEFAULT = "default"
    RULE = "rule"

    # Programmability
    FUNCTION = "function"
    STORED_PROCEDURE = "stored_procedure"
    TABLE_TRIGGER = "table_trigger"
    VIEW = "view"
    DATABASE_TRIGGER = "database_trigger"
    SYNONYM = "synonym"

    # Search and external data
    FULL_TEXT_CATALOG = "full_text_catalog"
    FULL_TEXT_STOPLIST = "full_text_stoplist"
    EXTERNAL_DATA_SOURCE = "external_data_source"
    EXTERNAL_FILE_FORMAT = "external_file_format"
    SEARCH_PROPERTY_LIST = "search_property_list"
    PLAN_GUIDE = "plan_guide"

    # Row-level security and data
    SECURITY_POLICY = "security_policy"
    TABLE_DATA = "table_data"


def _substitute_env(value: Any) -> Any:
    """Replace a ``${VAR}`` string with the environment value, if set."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return os.getenv(value[2:-1], value)
    return value


class MetadataConfig(BaseModel):
    """Replication job metadata."""

    name: str = Field(..., description="Job name")
    description: Optional[str] = Field(None, description="Job description")


class ConnectionConfig(BaseModel):
    """Database connection configuration."""

    type: SourceType = Field(default=SourceType.SQLSERVER, description="Backend type")
    server: str = Field(..., description="Server name, optionally with ',port'")
    database: str = Field(..., description="Database name")
    username: Optional[str] = Field(None, description="SQL login name")
    password: Optional[str] = Field(None, description="SQL login password")
    driver: str = Field(
        default="ODBC Driver 18 for SQL Server", description="ODBC driver name"
    )
    trusted_connection: bool = Field(
        default=False, description="Use integrated authentication"
    )
    trust_server_certificate: bool = Field(
        default=False, description="Skip server certificate validation"
    )
    connect_timeout: int = Field(default=30, ge=1, description="Login timeout (s)")
    command_timeout: int = Field(default=300, ge=0, description="Command timeout (s)")
    properties: Dict[str, Any] = Field(
        default_factory=dict, description="Extra connection string properties"
    )

    @field_validator("username", "password", mode="before")
    @classmethod
    def substitute_env_vars(cls, v: Any) -> Any:
        """Substitute environment variables in credential fields."""
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            return os.getenv(v[2:-1])
        return v

    @field_validator("properties", mode="before")
    @classmethod
    def substitute_env_vars_in_properties(
        cls, v: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Substitute environment variables in property values."""
        if not v:
            return v
        return {key: _substitute_env(value) for key, value in v.items()}

    @model_validator(mode="after")
    def validate_credentials(self):
        """Either integrated auth or a username is required."""
        if not self.trusted_connection and not self.username:
            raise ValueError(
                "Either 'trusted_connection' or 'username' must be provided"
            )
        return self


class RetrySettings(BaseModel):
    """Connection retry with exponential backoff."""

    max_attempts: int = Field(default=3, ge=1, description="Total attempts")
    initial_delay: float = Field(default=1.0, ge=0.0, description="First delay (s)")
    max_delay: float = Field(default=60.0, ge=0.0, description="Delay cap (s)")


class GroupingConfig(BaseModel):
    """Grouping mode per object kind."""

    default: GroupingMode = Field(
        default=GroupingMode.SINGLE, description="Mode for kinds without override"
    )
    overrides: Dict[ObjectKind, GroupingMode] = Field(
        default_factory=dict, description="Per-kind grouping overrides"
    )

    def mode_for(self, kind: ObjectKind) -> GroupingMode:
        """Get the configured grouping mode for a kind."""
        return self.overrides.get(kind, self.default)


class FilterConfig(BaseModel):
    """Kind and name filters applied while building work items."""

    include_kinds: List[ObjectKind] = Field(
        default_factory=list, description="Whitelist of kinds"
    )
    exclude_kinds: List[ObjectKind] = Field(
        default_factory=list, description="Blacklist of kinds"
    )
    include_patterns: List[str] = Field(
        default_factory=list, description="Regex patterns on 'owner.name' to include"
    )
    exclude_patterns: List[str] = Field(
        default_factory=list, description="Regex patterns on 'owner.name' to exclude"
    )

    @model_validator(mode="after")
    def validate_kind_lists(self):
        """Whitelist and blacklist are mutually exclusive."""
        if self.include_kinds and self.exclude_kinds:
            raise ValueError(
                "'include_kinds' and 'exclude_kinds' cannot be used together"
            )
        return self


class DeltaConfig(BaseModel):
    """Incremental export configuration."""

    enabled: bool = Field(default=False, description="Enable delta export")
    previous_export: Optional[Path] = Field(
        None, description="Folder of the previous export run"
    )

    @model_validator(mode="after")
    def validate_previous_export(self):
        """Delta mode needs a previous export to compare against."""
        if self.enabled and not self.previous_export:
            raise ValueError("'previous_export' is required when delta is enabled")
        return self


class ParallelConfig(BaseModel):
    """Parallel export configuration."""

    enabled: bool = Field(default=False, description="Use the worker pool")
    workers: int = Field(default=5, ge=1, le=20, description="Worker count")
    progress_interval: float = Field(
        default=2.0, gt=0.0, description="Seconds between progress reports"
    )


class DependencyRetryConfig(BaseModel):
    """Multi-pass retry of scripts that may reference each other."""

    enabled: bool = Field(default=True, description="Enable dependency retries")
    max_passes: int = Field(default=10, ge=1, le=100, description="Maximum passes")
    kinds: List[ObjectKind] = Field(
        default_factory=lambda: [
            ObjectKind.FUNCTION,
            ObjectKind.STORED_PROCEDURE,
            ObjectKind.VIEW,
        ],
        description="Kinds whose scripts are retry-eligible",
    )

    @field_validator("kinds")
    @classmethod
    def reject_security_policies(cls, v: List[ObjectKind]) -> List[ObjectKind]:
        """Security policies always run after the retry set."""
        if ObjectKind.SECURITY_POLICY in v:
            raise ValueError("'security_policy' scripts cannot be retry-eligible")
        return v


class ExportSettings(BaseModel):
    """Export (source side) configuration."""

    source: ConnectionConfig = Field(..., description="Source database")
    output_dir: Path = Field(default=Path("./exports"), description="Export root")
    grouping: GroupingConfig = Field(default_factory=GroupingConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    include_data: bool = Field(default=False, description="Script table data")
    script_options: Dict[str, Any] = Field(
        default_factory=dict, description="Global scripting option overrides"
    )
    delta: DeltaConfig = Field(default_factory=DeltaConfig)
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)


class ImportSettings(BaseModel):
    """Import (target side) configuration."""

    target: ConnectionConfig = Field(..., description="Target database")
    source_dir: Path = Field(..., description="Export run folder to replay")
    continue_on_error: bool = Field(
        default=False, description="Continue after ordinary script failures"
    )
    include_data: bool = Field(default=False, description="Load table data")
    dependency_retries: DependencyRetryConfig = Field(
        default_factory=DependencyRetryConfig
    )
    sqlcmd_variables: Dict[str, str] = Field(
        default_factory=dict, description="Values for $(NAME) placeholders"
    )

    @field_validator("sqlcmd_variables", mode="before")
    @classmethod
    def substitute_env_vars_in_variables(
        cls, v: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Substitute environment variables in SQLCMD variable values."""
        if not v:
            return v
        return {key: _substitute_env(value) for key, value in v.items()}


class ReplicationConfig(BaseModel):
    """Root replication configuration."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    metadata: MetadataConfig = Field(..., description="Job metadata")
    retry: RetrySettings = Field(default_factory=RetrySettings)
    export: Optional[ExportSettings] = Field(None, description="Export settings")
    import_: Optional[ImportSettings] = Field(
        None, alias="import", description="Import settings"
    )

    @model_validator(mode="after")
    def validate_sections(self):
        """At least one of export/import must be configured."""
        if self.export is None and self.import_ is None:
            raise ValueError("Either 'export' or 'import' must be configured")
        return self
