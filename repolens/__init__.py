"""repolens: GitHub repository review jobs backed by an LLM."""

__version__ = "0.1.0"
