"""Configuration management for docimport."""
import os
import re
import yaml
from pathlib import Path
from typing import Optional, Any, Union
from pydantic import BaseModel, Field, field_validator

from importer.core.enums import DataFormat, UploadOperation
from importer.core.exceptions import ConfigError


DEFAULT_BATCH_SIZE = 20 * 1024 * 1024  # 20 MiB

_BYTE_UNITS = {
    "": 1,
    "b": 1,
    "k": 1000,
    "kb": 1000,
    "m": 1000 ** 2,
    "mb": 1000 ** 2,
    "g": 1000 ** 3,
    "gb": 1000 ** 3,
    "t": 1000 ** 4,
    "tb": 1000 ** 4,
    "kib": 1024,
    "mib": 1024 ** 2,
    "gib": 1024 ** 3,
    "tib": 1024 ** 4,
}

_BYTE_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$")


def parse_byte_size(value: Union[str, int]) -> int:
    """
    Parse a byte-unit string into a number of bytes.

    SI units (KB, MB, GB, TB) are powers of 1000, IEC units (KiB, MiB, GiB,
    TiB) powers of 1024. A bare number is a byte count.

    Examples:
        >>> parse_byte_size("50MB")
        50000000
        >>> parse_byte_size("20 MiB")
        20971520
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid byte size: {value!r}")
    if isinstance(value, int):
        size = value
    else:
        match = _BYTE_SIZE_RE.match(str(value))
        if not match:
            raise ConfigError(f"Invalid byte size: {value!r}")
        number, unit = match.groups()
        multiplier = _BYTE_UNITS.get(unit.lower())
        if multiplier is None:
            raise ConfigError(f"Unknown byte unit {unit!r} in {value!r}")
        size = int(float(number) * multiplier)

    if size <= 0:
        raise ConfigError(f"Byte size must be positive, got {value!r}")
    return size


class RetryConfig(BaseModel):
    """Exponential backoff policy for batch uploads."""
    base_delay_seconds: float = Field(default=0.1, gt=0, description="Delay before the first retry")
    max_delay_seconds: float = Field(default=3600.0, gt=0, description="Upper bound for any single delay")
    max_attempts: int = Field(default=20, ge=1, description="Attempts per batch before giving up")


class HttpConfig(BaseModel):
    """Transport options passed to the HTTP client."""
    timeout_seconds: float = Field(default=300.0, gt=0, description="Per-request timeout")
    gzip: bool = Field(default=True, description="Compress request bodies (Content-Encoding: gzip)")
    verify_tls: bool = True


class ImporterConfig(BaseModel):
    """Root configuration for docimport."""
    # Target
    url: str = Field(..., description="Base URL of the search engine, e.g. http://localhost:7700")
    index: str = Field(..., description="Index receiving the documents")
    primary_key: Optional[str] = None
    api_key: Optional[str] = Field(default=None, description="Sent as a Bearer token when set")

    # Inputs
    files: list[str] = Field(default_factory=list, description="Paths, globs or directories")
    file_format: Optional[DataFormat] = Field(
        default=None,
        description="Force a format instead of detecting it from the extension (required for stdin)"
    )
    csv_delimiter: str = ","

    # Batching
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, description="Max serialized bytes per batch")
    skip_batches: int = Field(default=0, ge=0, description="Leading batches to generate but not send")
    upload_operation: UploadOperation = UploadOperation.ADD_OR_REPLACE

    retry: RetryConfig = Field(default_factory=RetryConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)

    # Output
    show_progress: bool = True
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("url must not be empty")
        return value

    @field_validator("index")
    @classmethod
    def _check_index(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("index must not be empty")
        return value.strip()

    @field_validator("batch_size", mode="before")
    @classmethod
    def _parse_batch_size(cls, value: Any) -> int:
        try:
            return parse_byte_size(value)
        except ConfigError as e:
            raise ValueError(str(e)) from e

    @field_validator("csv_delimiter")
    @classmethod
    def _check_delimiter(cls, value: str) -> str:
        if value == "\\t":
            value = "\t"
        if len(value) != 1:
            raise ValueError(f"csv_delimiter must be a single character, got {value!r}")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()


def load_config(
    config_path: Optional[str] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> ImporterConfig:
    """
    Load configuration from YAML and apply overrides on top.

    Args:
        config_path: Path to config file. If None, looks for:
            1. DOCIMPORT_CONFIG environment variable
            2. ./config/config.yaml
            When nothing is found, configuration comes from overrides only.
        overrides: Values that take precedence over the file (e.g. CLI flags).
            Keys with a None value are ignored.

    Returns:
        ImporterConfig instance

    Raises:
        ConfigError: If the file is missing or the result does not validate.
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = os.environ.get("DOCIMPORT_CONFIG")
        explicit = config_path is not None

        if config_path is None:
            candidate = Path("./config/config.yaml")
            if candidate.exists():
                config_path = str(candidate)

    data: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            if explicit:
                raise ConfigError(f"Config file not found: {path}")
        elif not path.is_file():
            raise ConfigError(f"Config path is not a file: {path}")
        else:
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
            except OSError as e:
                raise ConfigError(f"Cannot read config file {path}: {e.strerror or e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain a mapping")

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        return ImporterConfig(**data)
    except ValueError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def save_example_config(output_path: str = "./config/config.example.yaml"):
    """
    Save an example configuration file.

    Args:
        output_path: Where to save the example config
    """
    example = {
        "url": "http://localhost:7700",
        "index": "movies",
        "primary_key": "id",
        "api_key": "MASTER_KEY",
        "files": ["data/*.ndjson"],
        "batch_size": "20 MiB",
        "csv_delimiter": ",",
        "skip_batches": 0,
        "upload_operation": "add-or-replace",
        "retry": {
            "base_delay_seconds": 0.1,
            "max_delay_seconds": 3600,
            "max_attempts": 20,
        },
        "http": {
            "timeout_seconds": 300,
            "gzip": True,
        },
        "log_level": "INFO",
    }

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        yaml.dump(example, f, default_flow_style=False, sort_keys=False)

    print(f"Example config saved to {output_path}")
