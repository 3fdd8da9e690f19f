"""Distribution packaging pipeline for MultiInstance desktop builds."""

__version__ = "0.1.0"
