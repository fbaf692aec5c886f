"""Studio departments: hierarchical agent orchestration with quality gating and audit analytics."""

__version__ = "0.1.0"
