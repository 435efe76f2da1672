"""Domain layer: command grammar models and issue state."""
