"""Adapters implementing NotNow ports."""
