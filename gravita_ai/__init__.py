"""Gravita AI: multi-provider LLM routing with usage and budget tracking."""

__version__ = "1.0.0"
