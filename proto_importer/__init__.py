"""Protocol buffer stub generation with importable Python package output."""

__version__ = "0.3.0"
