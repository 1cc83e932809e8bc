"""benchtrend: benchmark measurement collation and timeline statistics."""

__version__ = "0.3.0"
