"""Multi-frequency metal detector signal pipeline."""

__version__ = "0.1.0"
