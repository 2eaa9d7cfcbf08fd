"""claw-agent: a streaming, tool-calling conversational agent."""

__version__ = "0.1.0"
