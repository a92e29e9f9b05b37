"""Speckit AI Proxy: relays prompts to an LLM or to Azure DevOps."""

__version__ = "0.1.0"
