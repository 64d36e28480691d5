"""Co-Pilot Board: multi-conversation LLM chat with rolling summaries and meta analysis."""

__version__ = "0.1.0"
