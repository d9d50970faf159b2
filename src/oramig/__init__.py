"""
oramig - Oracle migration planner for hosts linked only by shared storage
"""

__version__ = "0.3.0"

from .core import MigrationError, MigrationPlanner

__all__ = ["MigrationPlanner", "MigrationError"]
