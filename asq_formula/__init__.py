"""asq-formula — build, install and verify the asq query tool."""

__version__ = "0.1.0"
