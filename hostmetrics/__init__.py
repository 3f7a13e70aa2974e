"""hostmetrics: host metrics sampler with an append-only monthly CSV log."""

__version__ = "0.3.0"
