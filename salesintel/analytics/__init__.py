"""
Analytics Module
"""
from .base import EngineResult
from .opportunity import OpportunityEngine
from .performance import PerformanceEngine
from .segmentation import SegmentationEngine
from .trends import TrendEngine

__all__ = [
    "EngineResult",
    "OpportunityEngine",
    "PerformanceEngine",
    "SegmentationEngine",
    "TrendEngine",
]
