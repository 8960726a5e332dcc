"""Streaming AI client, prompt templates, and error types."""

from .client import ClientSettings, StreamClient, StreamRequest, StreamSession
from .errors import AIError, ConfigurationError, MalformedRecordError, TransportError
from .prompts import ActionKind, Prompt, PromptContext, TemplateKind, build_prompt

__all__ = [
    "AIError",
    "ActionKind",
    "ClientSettings",
    "ConfigurationError",
    "MalformedRecordError",
    "Prompt",
    "PromptContext",
    "StreamClient",
    "StreamRequest",
    "StreamSession",
    "TemplateKind",
    "TransportError",
    "build_prompt",
]
