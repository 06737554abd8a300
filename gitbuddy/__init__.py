"""gitbuddy - AI assistant for commits, code review, debugging and work reports."""

__version__ = "0.1.0"

from gitbuddy.config import Config

__all__ = ["Config", "__version__"]
