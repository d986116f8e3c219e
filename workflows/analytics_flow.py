"""
Prefect Workflow Orchestration - Sales Insights

Batch analysis of one snapshot:
- Load and validate the CSV snapshot
- Fan out the analysis engines as concurrent tasks
- Fan in to a single insight report
"""

from datetime import date
from typing import Optional

from prefect import flow, task, get_run_logger
from prefect.cache_policies import NO_CACHE

from salesintel.analytics.base import EngineResult
from salesintel.config.settings import AnalyticsSettings, build_analysis_config, get_settings
from salesintel.exceptions import is_transient
from salesintel.facts.model import FactModel
from salesintel.ingestion.snapshot import SnapshotLoader
from salesintel.reporting.assembler import ENGINES, ReportAssembler
from salesintel.reporting.report import InsightReport

settings = get_settings()


# =============================================================================
# TASKS
# =============================================================================

def retry_unless_analysis_error(retried_task, task_run, state) -> bool:
    """Integrity and configuration failures repeat on every attempt"""
    try:
        state.result()
    except Exception as e:
        return is_transient(e)
    return True


@task(
    name="load_snapshot",
    description="Read the CSV snapshot and build a validated fact model",
    retries=2,
    retry_delay_seconds=30,
    retry_condition_fn=retry_unless_analysis_error,
    cache_policy=NO_CACHE,
)
def load_snapshot(data_dir: str) -> FactModel:
    """Load snapshot files into a fact model"""
    logger = get_run_logger()

    loader = SnapshotLoader(data_dir=data_dir)
    facts = loader.load()

    logger.info(f"Snapshot loaded: {sum(load.rows for load in loader.loads)} rows across {len(loader.loads)} files")
    return facts


@task(
    name="run_engine",
    description="Run one analysis engine over the fact model",
    cache_policy=NO_CACHE,
)
def run_engine(engine_name: str, facts: FactModel, config: AnalyticsSettings) -> EngineResult:
    """Compute the sections of a single engine"""
    logger = get_run_logger()

    result = ENGINES[engine_name](facts, config).run()

    logger.info(f"Engine {engine_name} complete: {len(result.sections)} sections")
    return result


@task(
    name="assemble_report",
    description="Merge engine results into the insight report",
    cache_policy=NO_CACHE,
)
def assemble_report(
    results: list,
    facts: FactModel,
    config: AnalyticsSettings,
    output_path: Optional[str] = None,
) -> InsightReport:
    """Fan-in of engine results, optionally written as JSON"""
    logger = get_run_logger()

    report = ReportAssembler(facts, config).build_report(results)
    if output_path:
        report.write_json(output_path)

    omitted = sum(report.omissions.values())
    logger.info(f"Report assembled: {len(report.sections)} sections, {omitted} groups omitted")
    return report


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="sales_insights",
    description="Point-in-time sales intelligence over an order snapshot",
)
def sales_insights(
    as_of_date: date,
    data_dir: Optional[str] = None,
    output_path: Optional[str] = None,
    pareto_threshold: Optional[float] = None,
) -> dict:
    """
    Sales insights pipeline.

    Steps:
    1. Validate the analysis parameters
    2. Load the snapshot into a fact model
    3. Run every engine concurrently
    4. Merge results into the report
    """
    logger = get_run_logger()

    config = build_analysis_config(as_of_date=as_of_date, pareto_threshold=pareto_threshold)
    data_dir = data_dir or settings.snapshot.data_dir

    logger.info(f"Starting sales insights for as-of date {as_of_date.isoformat()}")

    facts = load_snapshot(data_dir)

    futures = [run_engine.submit(name, facts, config) for name in ENGINES]
    results = [future.result() for future in futures]

    report = assemble_report(results, facts, config, output_path)

    return {
        "as_of_date": as_of_date.isoformat(),
        "sections": {name: len(df) for name, df in report.sections.items()},
        "omissions": report.omissions,
        "never_purchased_count": report.never_purchased_count,
        "output_path": output_path,
        "status": "success",
    }


if __name__ == "__main__":
    import sys

    sales_insights(as_of_date=date.fromisoformat(sys.argv[1]))
