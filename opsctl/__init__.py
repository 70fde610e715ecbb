"""ops: merge tracker items with local sidecar state and run agent command templates."""

__version__ = "0.1.0"
