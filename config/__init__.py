"""Config package."""
from .config import (
    ImporterConfig,
    HttpConfig,
    RetryConfig,
    load_config,
    parse_byte_size,
    save_example_config,
)

__all__ = [
    "ImporterConfig",
    "HttpConfig",
    "RetryConfig",
    "load_config",
    "parse_byte_size",
    "save_example_config",
]
