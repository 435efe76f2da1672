"""NotNow: issue workflow commands embedded in issue text."""

__version__ = "0.3.0"
