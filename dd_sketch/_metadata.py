"""Project metadata shared by the runtime and the packaging configuration."""

__version__ = "1.0.0"
