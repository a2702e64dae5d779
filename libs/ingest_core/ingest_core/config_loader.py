"""Đọc matching.yml (luật gợi ý collection). Đường dẫn: tham số hoặc env INGEST_MATCHING_CONFIG."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Sequence

import yaml

from ingest_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

MATCHING_CONFIG_ENV = "INGEST_MATCHING_CONFIG"


def get_config(config: dict, keys: Sequence[str], default: Any = None) -> Any:
    """get_config(cfg, ["heuristic", "threshold"]); thiếu tầng nào (hoặc giá trị null) thì trả default."""
    node: Any = config
    for key in keys:
        if not isinstance(node, dict) or node.get(key) is None:
            return default
        node = node[key]
    return node


def load_matching_config(path: str | None = None) -> dict:
    """Không cấu hình hoặc file không tồn tại -> {} (luật mặc định). YAML hỏng -> ConfigurationError."""
    raw = (path or os.getenv(MATCHING_CONFIG_ENV, "")).strip()
    if not raw:
        return {}
    config_path = Path(raw).expanduser().resolve()
    if not config_path.is_file():
        logger.warning("[MATCH] Không thấy file luật %s, dùng luật mặc định", config_path)
        return {}
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid matching config: {config_path}", detail=str(e)) from e
    if not isinstance(data, dict):
        logger.warning("[MATCH] %s không phải mapping YAML, dùng luật mặc định", config_path)
        return {}
    logger.info("[MATCH] Đã load luật gợi ý từ %s", config_path)
    return data
