"""
E-Commerce Sales Intelligence
Reporting Module
"""
from .assembler import ReportAssembler, assemble_report
from .recommendations import build_recommendations
from .report import InsightReport

__all__ = ["InsightReport", "ReportAssembler", "assemble_report", "build_recommendations"]
