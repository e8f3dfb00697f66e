"""Model client interfaces."""

from .client import ChatModelClient, ModelClient, ModelDeferred, ModelOutput, message_text

__all__ = [
    "ChatModelClient",
    "ModelClient",
    "ModelDeferred",
    "ModelOutput",
    "message_text",
]
