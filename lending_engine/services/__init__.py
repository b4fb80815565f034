"""Service modules"""
from .monitor import PositionMonitor, build_notifiers

__all__ = ["PositionMonitor", "build_notifiers"]
