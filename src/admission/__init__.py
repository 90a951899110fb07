"""Registration admission engine for capacity-bounded course batches."""

__version__ = "0.1.0"
