"""Data models for Porthor."""
