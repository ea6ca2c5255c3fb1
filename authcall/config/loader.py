"""Load and validate YAML client configuration."""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from authcall.models import ClientConfig
from authcall.utils import get_logger, validate_config

logger = get_logger(__name__)


def load_config_dict(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config validation error: expected mapping in {path}, got {type(cfg).__name__}")
    validate_config(cfg)
    return cfg


def parse_config(cfg: Dict[str, Any]) -> ClientConfig:
    try:
        return ClientConfig.model_validate(cfg)
    except ValidationError as e:
        raise ValueError(f"Config validation error: {e.errors()[0]['msg']} at {list(e.errors()[0]['loc'])}") from e


def load_config(path: str) -> ClientConfig:
    config = parse_config(load_config_dict(path))
    logger.info(
        "config loaded path=%s base_url=%s max_retries=%d",
        path,
        config.service.base_url,
        config.retry.max_retries,
    )
    return config


def resolve_api_key(config: ClientConfig) -> Optional[str]:
    """Inline key wins; otherwise read the environment variable named in the config."""
    return config.service.api_key or os.getenv(config.service.api_key_env) or None
