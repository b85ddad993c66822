"""CLI tools for seven-sync."""
