"""Read-only reporting over the hub state."""
