# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

_TRUE_VALUES = ("1", "true", "yes", "y", "on")


def get_bool_env(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in _TRUE_VALUES


def get_str_env(name: str, default: str = "") -> str:
    val = os.getenv(name)
    return default if val is None else str(val).strip()


def get_int_env(name: str, default: int = 0) -> int:
    val = os.getenv(name)
    if val is None:
        return default
    try:
        return int(val.strip())
    except ValueError:
        logger.warning("Invalid integer value for %s: %s. Using default %s.", name, val, default)
        return default


def get_list_env(name: str, default: Optional[list[str]] = None) -> list[str]:
    """Comma separated list, blanks dropped."""
    val = os.getenv(name)
    if val is None:
        return list(default or [])
    return [item.strip() for item in val.split(",") if item.strip()]
