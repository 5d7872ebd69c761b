"""Vertex AI Gemini gateway with chat-style request translation."""

__version__ = "0.1.0"
