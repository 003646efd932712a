"""Completion client, prompts and tool-calling orchestration."""

from .client import ClientSettings, CompletionClient, ModelClient

__all__ = ["ClientSettings", "CompletionClient", "ModelClient"]
