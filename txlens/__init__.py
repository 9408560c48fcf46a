"""txlens - natural-language explanations of blockchain transactions."""

__version__ = "0.1.0"
