# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from .orchestrator import ChatOrchestrator

__all__ = ["ChatOrchestrator"]
