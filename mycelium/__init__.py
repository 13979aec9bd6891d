"""Keep AI coding tools in sync with one declared manifest of skills, MCPs and friends."""

__version__ = "0.4.0"
