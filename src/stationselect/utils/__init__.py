"""
Utility helpers orthogonal to the precomputation logic.

• Console logging colours, formatter and progress bar (`logging.py`).
"""

from .logging import Colors, ProgressTracker, SimpleFormatter, Symbols, setup_logging

__all__ = [
    "Colors",
    "ProgressTracker",
    "SimpleFormatter",
    "Symbols",
    "setup_logging",
]
