# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from dotenv import load_dotenv

from .loader import get_bool_env, get_int_env, get_list_env, get_str_env
from .models import DEFAULT_MODEL_ID, MODEL_ROUTES, ModelRoute, get_route, validate_routes

# Load environment variables
load_dotenv()

__all__ = [
    "DEFAULT_MODEL_ID",
    "MODEL_ROUTES",
    "ModelRoute",
    "get_bool_env",
    "get_int_env",
    "get_list_env",
    "get_route",
    "get_str_env",
    "validate_routes",
]
