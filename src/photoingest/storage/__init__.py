"""Staging layout, promotion and deletion of generated files."""
