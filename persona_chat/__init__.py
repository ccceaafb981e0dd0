"""Persona chat: session-aware chat over a hosted LLM with tools and retrieval."""

__version__ = "1.0.0"
