# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

"""Error taxonomy shared by the chat server and the stream clients."""


class ChatError(Exception):
    """Base class for failures that end a chat turn."""


class TransportError(ChatError):
    """Network or read failure while talking to a stream endpoint."""


class ProviderError(ChatError):
    """The model backend failed mid-stream."""


class RetrievalError(ChatError):
    """Context resolution failed in a way that must stop the turn."""


class PersistenceError(ChatError):
    """Store write failed after an answer was produced."""


class ValidationError(ChatError):
    """Malformed request, rejected before any stream starts."""


class ConfigurationError(ChatError):
    """Startup configuration cannot be used."""


class AgentRuntimeError(ChatError):
    """The external agent runtime reported a failed run."""


class CancellationSignal(Exception):
    """The user stopped the turn. Expected, never shown as an error."""
