"""Ports for external integrations."""
