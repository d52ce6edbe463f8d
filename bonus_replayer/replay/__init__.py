"""
Replay of staged requests and reporting of their outcomes
"""

from .report import ReplayOutcome, ReplayReport
from .engine import ReplayEngine

__all__ = [
    "ReplayEngine",
    "ReplayOutcome",
    "ReplayReport",
]
