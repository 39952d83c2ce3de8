"""Sleep tracking server with streamed AI sleep advice."""

__version__ = "0.1.0"
