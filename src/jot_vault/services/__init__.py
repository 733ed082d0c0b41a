"""Service layer for Jot Vault."""
