"""Node registry package."""
