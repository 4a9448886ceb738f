"""
Reference strategies

Available models:
- weighted_scoring: Composite weighted scoring over frequency and recency factors
- random_pick: Uniformly random ranking, the baseline to beat
"""

from . import weighted_scoring
from . import random_pick

__all__ = [
    "weighted_scoring",
    "random_pick",
]
