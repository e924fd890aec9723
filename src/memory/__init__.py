# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from .service import MemoryService, build_memory_service

__all__ = ["MemoryService", "build_memory_service"]
