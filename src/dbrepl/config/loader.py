"""Configuration loader for replication job files."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from dbrepl.config.schema import ReplicationConfig


class ConfigLoadError(Exception):
    """Raised when a job file cannot be read or does not validate."""

    pass


def _format_errors(error: ValidationError) -> str:
    lines = []
    for detail in error.errors():
        location = " -> ".join(str(part) for part in detail["loc"]) or "<root>"
        lines.append(f"  - {location}: {detail['msg']}")
    return "\n".join(lines)


def _anchor(path: Optional[Path], base_dir: Path) -> Optional[Path]:
    """Resolve a relative path against the job file's folder."""
    if path is None or path.is_absolute():
        return path
    return base_dir / path


class ConfigLoader:
    """
    Reads a YAML job file into a validated ReplicationConfig.

    Relative folder settings (``export.output_dir``,
    ``export.delta.previous_export``, ``import.source_dir``) are taken
    relative to the job file, so a job behaves the same whatever the
    working directory.
    """

    @staticmethod
    def load_yaml(file_path: str | Path) -> Dict[str, Any]:
        """
        Parse a job file into a raw mapping.

        Args:
            file_path: Path to the YAML job file

        Returns:
            Raw configuration mapping

        Raises:
            ConfigLoadError: If the file is missing, unreadable, not YAML,
                or not a mapping at the top level
        """
        file_path = Path(file_path)
        if not file_path.is_file():
            raise ConfigLoadError(f"Configuration file not found: {file_path}")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(f"Invalid YAML syntax in {file_path}: {e}") from e
        except OSError as e:
            raise ConfigLoadError(f"Failed to read {file_path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigLoadError(
                f"Configuration must be a YAML mapping, got {type(raw).__name__}"
            )
        return raw

    @staticmethod
    def validate_config(raw: Dict[str, Any]) -> ReplicationConfig:
        """
        Validate a raw mapping against the schema.

        Raises:
            ConfigLoadError: With one line per invalid field
        """
        try:
            return ReplicationConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigLoadError(
                "Configuration validation failed:\n" + _format_errors(e)
            ) from e

    @staticmethod
    def anchor_paths(config: ReplicationConfig, base_dir: Path) -> ReplicationConfig:
        """Make relative folder settings relative to ``base_dir``."""
        if config.export is not None:
            config.export.output_dir = _anchor(config.export.output_dir, base_dir)
            delta = config.export.delta
            delta.previous_export = _anchor(delta.previous_export, base_dir)
        if config.import_ is not None:
            config.import_.source_dir = _anchor(config.import_.source_dir, base_dir)
        return config

    @classmethod
    def load(cls, file_path: str | Path) -> ReplicationConfig:
        """
        Load and validate a job file.

        Args:
            file_path: Path to the YAML job file

        Returns:
            Validated ReplicationConfig with anchored folder settings

        Raises:
            ConfigLoadError: If loading or validation fails

        Example:
            >>> config = ConfigLoader.load("jobs/nightly.yaml")
            >>> print(config.export.source.database)
        """
        raw = cls.load_yaml(file_path)
        config = cls.validate_config(raw)
        return cls.anchor_paths(config, Path(file_path).parent)
