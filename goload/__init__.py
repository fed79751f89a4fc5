"""Configuration, logging, cache, SQL storage, password hashing and token services."""

__version__ = "0.1.0"