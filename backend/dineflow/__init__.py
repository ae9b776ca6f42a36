"""Restaurant order fan-out: assignment, item progress and order lifecycle."""

__version__ = "1.0.0"
