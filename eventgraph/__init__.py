"""Event journals, batching, compression, replay, indexing and timing tools for event-sourced graphs."""

__version__ = "0.1.0"

__all__ = ["batching", "compression", "indexing", "journal", "monitoring", "parallel", "replay"]