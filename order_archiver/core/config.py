"""
Configuration management.

Settings come from an optional YAML file and are then overridden by
environment variables prefixed with ``ORDER_ARCHIVER_``. Every setting has a
default matching the legacy ``orders`` collection layout, so a run needs no
configuration at all.

Expected YAML format:
```yaml
archiver:
  collection: orders
  order_by: date
  fields:
    identifier: uid
    timestamp: date
    line_items: products
  item_error_policy: skip      # skip | zero | fail
  archive_format: xml          # xml | json
  lock_path: /var/run/order-archiver/.pid
  request_timeout: 60
  delete_chunk_size: 500
  logging:
    level: INFO
    format: json               # json | text
```
"""

import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

from order_archiver.observability.logger import get_logger

ENV_PREFIX = "ORDER_ARCHIVER_"

# Firestore rejects write batches larger than this
MAX_DELETE_CHUNK_SIZE = 500

logger = get_logger(__name__)


class ItemErrorPolicy(str, Enum):
    """What to do with a line item whose payload does not decode."""

    SKIP = "skip"  # drop the item, keep the order
    ZERO = "zero"  # keep an empty product in its place (legacy output)
    FAIL = "fail"  # abort the run


class ArchiverConfig(BaseModel):
    """
    Settings for a transfer run.

    Attributes:
        collection: Store collection holding the orders
        order_by: Field the store sorts on, descending
        identifier_field: Document field holding the order uid
        timestamp_field: Document field holding the order date
        line_items_field: Document field holding the encoded products
        item_error_policy: Handling of undecodable line items
        archive_format: Archive serialization ("xml" or "json")
        lock_path: Lock marker path (defaults to the program directory)
        request_timeout: Seconds allowed for each store fetch/delete call
        delete_chunk_size: Deletes per store write batch
        log_level: Logging level name
        log_format: "json" or "text"
    """

    collection: str = Field("orders", min_length=1)
    order_by: str = Field("date", min_length=1)
    identifier_field: str = Field("uid", min_length=1)
    timestamp_field: str = Field("date", min_length=1)
    line_items_field: str = Field("products", min_length=1)
    item_error_policy: ItemErrorPolicy = ItemErrorPolicy.SKIP
    archive_format: Literal["xml", "json"] = "xml"
    lock_path: Path | None = None
    request_timeout: float | None = Field(None, gt=0)
    delete_chunk_size: int = Field(MAX_DELETE_CHUNK_SIZE, ge=1, le=MAX_DELETE_CHUNK_SIZE)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "json"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    class Config:
        extra = "forbid"


class ArchiverConfigLoader:
    """
    Loads ArchiverConfig settings from a YAML configuration file.
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

    def load_settings(self) -> dict[str, Any]:
        """
        Parse the file into flat ArchiverConfig keyword arguments.

        Raises:
            ValueError: If the YAML lacks an 'archiver' section or is malformed
        """
        with open(self.config_path) as f:
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Malformed configuration file {self.config_path}: {e}") from e

        if not config or "archiver" not in config:
            raise ValueError("Configuration file must contain 'archiver' section")

        section = config["archiver"] or {}
        if not isinstance(section, dict):
            raise ValueError("'archiver' section must be a mapping")

        settings = {k: v for k, v in section.items() if k not in ("fields", "logging")}

        fields = section.get("fields") or {}
        if not isinstance(fields, dict):
            raise ValueError("'fields' must be a mapping")
        for key in ("identifier", "timestamp", "line_items"):
            if key in fields:
                settings[f"{key}_field"] = fields[key]

        logging_section = section.get("logging") or {}
        if not isinstance(logging_section, dict):
            raise ValueError("'logging' must be a mapping")
        if "level" in logging_section:
            settings["log_level"] = logging_section["level"]
        if "format" in logging_section:
            settings["log_format"] = logging_section["format"]

        return settings


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Collect ``ORDER_ARCHIVER_<SETTING>`` variables that name a known setting."""
    environ = os.environ if environ is None else environ
    overrides = {}
    for name in ArchiverConfig.model_fields:
        value = environ.get(ENV_PREFIX + name.upper())
        if value:
            overrides[name] = value
    return overrides


def load_config(
    config_path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> ArchiverConfig:
    """
    Build the effective configuration.

    Precedence, lowest first: defaults, YAML file, environment, ``overrides``
    (explicit CLI flags).
    """
    settings: dict[str, Any] = {}
    if config_path is not None:
        settings.update(ArchiverConfigLoader(config_path).load_settings())
        logger.debug(f"Loaded configuration from {config_path}")

    settings.update(env_overrides(environ))
    settings.update({k: v for k, v in overrides.items() if v is not None})

    return ArchiverConfig(**settings)
