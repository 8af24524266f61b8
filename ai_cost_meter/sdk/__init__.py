"""
SDK for AI Cost Meter.

Provides client wrappers that record costs as requests are made.
"""

from .openai_client import MeteredOpenAI

__all__ = ["MeteredOpenAI"]
