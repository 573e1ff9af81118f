"""Screen-recording post-processing: cursor replacement, click highlights and zoom."""

__version__ = "0.1.0"
