"""devforward: forward local ports into a running devcontainer."""

__version__ = "0.1.0"
