"""
Report Assembler

Runs the independent engines over one read-only fact model and merges their
sections into an InsightReport. Engines share no mutable state, so they can
be fanned out over a thread pool and joined here.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

import structlog

from salesintel.analytics.base import EngineResult
from salesintel.analytics.opportunity import OpportunityEngine
from salesintel.analytics.performance import PerformanceEngine
from salesintel.analytics.segmentation import SegmentationEngine
from salesintel.analytics.trends import TrendEngine
from salesintel.config.settings import AnalyticsSettings
from salesintel.exceptions import ConfigurationError
from salesintel.facts.model import FactModel
from salesintel.reporting.recommendations import build_recommendations
from salesintel.reporting.report import InsightReport

logger = structlog.get_logger(__name__)

ENGINES = {
    "segmentation": SegmentationEngine,
    "trends": TrendEngine,
    "opportunity": OpportunityEngine,
    "performance": PerformanceEngine,
}


class ReportAssembler:
    """
    Fan-out/fan-in driver for a full analysis run.

    Example:
        assembler = ReportAssembler(facts, build_analysis_config(as_of_date=date(2018, 10, 1)))
        report = assembler.assemble(parallel=True)
        report.write_json("reports/insights.json")
    """

    def __init__(
        self,
        facts: FactModel,
        config: AnalyticsSettings,
        max_workers: Optional[int] = None,
    ):
        if config.as_of_date is None:
            raise ConfigurationError("as_of_date", "an explicit as-of date is required")
        self.facts = facts
        self.config = config
        self.max_workers = max_workers or len(ENGINES)

    def _runners(self) -> List[Callable[[], EngineResult]]:
        return [engine_cls(self.facts, self.config).run for engine_cls in ENGINES.values()]

    def run_engines(self, parallel: bool = False) -> List[EngineResult]:
        """Engine results in fixed engine order, whichever finishes first"""
        runners = self._runners()
        if not parallel:
            return [run() for run in runners]

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="engine") as executor:
            futures = [executor.submit(run) for run in runners]
            return [future.result() for future in futures]

    def build_report(self, results: List[EngineResult]) -> InsightReport:
        """Fan-in: merge engine results, then derive recommendations"""
        report = InsightReport(as_of_date=self.config.as_of_date)
        for result in results:
            merge_result(report, result)
        report.recommendations = build_recommendations(report.sections, self.config)
        return report

    def assemble(self, parallel: bool = False) -> InsightReport:
        """Compute every section and merge them into one report"""
        logger.info(
            "Assembling insight report",
            as_of_date=self.config.as_of_date.isoformat(),
            parallel=parallel,
        )

        report = self.build_report(self.run_engines(parallel=parallel))

        logger.info(
            "Insight report assembled",
            sections=len(report.sections),
            omitted_groups=sum(report.omissions.values()),
            never_purchased=report.never_purchased_count,
        )
        return report


def merge_result(report: InsightReport, result: EngineResult) -> None:
    """Append an engine's sections and add its omission counts"""
    for name, df in result.sections.items():
        if name in report.sections:
            raise ValueError(f"Duplicate section '{name}' from engine {result.engine}")
        report.sections[name] = df
    for section, count in result.omissions.items():
        report.omissions[section] = report.omissions.get(section, 0) + count


def assemble_report(
    facts: FactModel,
    config: AnalyticsSettings,
    parallel: bool = False,
) -> InsightReport:
    """Convenience wrapper around ReportAssembler"""
    return ReportAssembler(facts, config).assemble(parallel=parallel)

