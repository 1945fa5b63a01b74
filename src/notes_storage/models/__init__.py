"""Data models for notes storage."""
