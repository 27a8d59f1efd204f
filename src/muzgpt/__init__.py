"""MUZGPT chat service: auth/billing backend and chat client core."""

__version__ = "0.1.0"
