"""Streaming pass-through gateway."""
