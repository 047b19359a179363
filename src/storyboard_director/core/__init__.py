"""Core value types and helpers."""
