"""Weather Chat CLI commands."""
