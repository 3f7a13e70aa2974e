from .retention import RetentionManager, SweepSummary

__all__ = ["RetentionManager", "SweepSummary"]
