"""Core configuration, logging, metrics and errors."""
