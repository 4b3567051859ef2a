"""Server plugins, service registries and utilities for RPC services."""

__version__ = "0.1.0"