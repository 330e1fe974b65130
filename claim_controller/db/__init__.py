"""Object store access."""
