"""Data models for Jot Vault."""
