"""Completion-backed proposal extraction."""

from taskdesk.agent.completion import CompletionClient, GeminiCompletionClient
from taskdesk.agent.extractor import ProposalExtractor

__all__ = [
    "CompletionClient",
    "GeminiCompletionClient",
    "ProposalExtractor",
]
