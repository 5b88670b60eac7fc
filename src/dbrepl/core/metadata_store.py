"""Export metadata: the persisted record of what an export run wrote."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dbrepl.config.schema import GroupingMode, ObjectKind
from dbrepl.objects.base import ObjectKey
from dbrepl.strategies.error_handling import MetadataError

logger = logging.getLogger(__name__)

METADATA_FILE_NAME = "_export_metadata.json"
FORMAT_VERSION = "1.0"


class ObjectRecord(BaseModel):
    """One exported object and the file holding its script."""

    model_config = ConfigDict(populate_by_name=True)

    kind: ObjectKind
    owner_group: Optional[str] = Field(None, alias="ownerGroup")
    name: str
    file_path: str = Field(..., alias="filePath")

    @property
    def key(self) -> ObjectKey:
        """Delta comparison key."""
        return (self.kind, self.owner_group, self.name)


class ExportMetadata(BaseModel):
    """Contents of the metadata file written at the root of every export run."""

    model_config = ConfigDict(populate_by_name=True)

    format_version: str = Field(FORMAT_VERSION, alias="formatVersion")
    export_start_time_utc: datetime = Field(..., alias="exportStartTimeUtc")
    export_start_time_local: datetime = Field(..., alias="exportStartTimeLocal")
    # Server clock at run start; reference for naive catalog modification times
    server_start_time: Optional[datetime] = Field(None, alias="serverStartTime")
    source_server: str = Field(..., alias="sourceServer")
    source_database: str = Field(..., alias="sourceDatabase")
    grouping_mode: GroupingMode = Field(GroupingMode.SINGLE, alias="groupingMode")
    includes_data: bool = Field(False, alias="includesData")
    object_count: int = Field(0, alias="objectCount")
    objects: List[ObjectRecord] = Field(default_factory=list)
    file_group_descriptors: List[Dict[str, Any]] = Field(
        default_factory=list, alias="fileGroupDescriptors"
    )

    def records_by_key(self) -> Dict[ObjectKey, ObjectRecord]:
        """Index records by delta comparison key."""
        return {record.key: record for record in self.objects}


class MetadataStore:
    """Reads and writes export metadata files."""

    @staticmethod
    def path_for(run_dir: Path) -> Path:
        """Location of the metadata file inside an export run folder."""
        return Path(run_dir) / METADATA_FILE_NAME

    @classmethod
    def read(cls, run_dir: Path) -> ExportMetadata:
        """
        Read the metadata of a previous export run.

        Args:
            run_dir: Export run folder

        Returns:
            Parsed ExportMetadata

        Raises:
            MetadataError: If the file is missing, unreadable or invalid
        """
        path = cls.path_for(run_dir)
        if not path.is_file():
            raise MetadataError(f"Export metadata not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise MetadataError(f"Failed to read export metadata {path}: {e}") from e

        try:
            metadata = ExportMetadata.model_validate(raw)
        except ValidationError as e:
            raise MetadataError(f"Invalid export metadata {path}: {e}") from e

        major = metadata.format_version.split(".", 1)[0]
        if major != FORMAT_VERSION.split(".", 1)[0]:
            raise MetadataError(
                f"Unsupported metadata format version {metadata.format_version} in {path}"
            )

        logger.debug(f"Read metadata for {metadata.object_count} object(s) from {path}")
        return metadata

    @classmethod
    def write(cls, run_dir: Path, metadata: ExportMetadata) -> Path:
        """
        Write run metadata.

        Args:
            run_dir: Export run folder
            metadata: Metadata to persist

        Returns:
            Path of the written file
        """
        path = cls.path_for(run_dir)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(metadata.model_dump_json(by_alias=True, indent=2))
        logger.info(f"Wrote export metadata ({metadata.object_count} objects) to {path}")
        return path
