"""Application services for NotNow."""
