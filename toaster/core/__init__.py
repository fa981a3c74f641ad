"""Core configuration, logging, errors and dependency wiring."""
