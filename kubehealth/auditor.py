"""
KubeHealth - Audit Run
One pass of the pipeline: collect -> evaluate -> aggregate -> compose -> deliver.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from kubehealth.alerting.aggregator import aggregate
from kubehealth.alerting.policy import evaluate_all
from kubehealth.alerting.report_composer import compose
from kubehealth.collectors.namespace_collector import collect_namespaces
from kubehealth.config import KubeHealthError
from kubehealth.models import Report

logger = logging.getLogger(__name__)

# Process exit codes
EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_COLLECTION_FAILED = 2
EXIT_DELIVERY_FAILED = 3


class CollectionFailedError(KubeHealthError):
    """No configured namespace could be collected; there is nothing to report."""

    def __init__(self, failures):
        names = ", ".join(f.namespace for f in failures)
        super().__init__(f"all {len(failures)} namespace(s) failed collection: {names}")
        self.failures = failures


@dataclass(frozen=True)
class AuditResult:
    report: Report
    payload: str
    pod_count: int


def build_report(config, collector, now=None):
    """Collect and evaluate every namespace, returning the composed report without sending it."""
    result = collect_namespaces(
        collector,
        config.namespaces,
        timeout=config.namespace_timeout_seconds,
        max_workers=config.max_workers,
    )
    if result.all_failed:
        raise CollectionFailedError(result.failures)

    now = now or datetime.now(timezone.utc)
    findings = evaluate_all(result.snapshots, config, now)
    report = aggregate(findings, result.failures, generated_at=now, cluster_name=config.cluster_name)

    logger.info(
        "Evaluated %d pod(s): %d finding(s) %s",
        result.pod_count,
        report.total,
        {kind.value: count for kind, count in report.counts().items() if count},
    )
    return AuditResult(report=report, payload=compose(report, config), pod_count=result.pod_count)


def run_audit(config, collector, sender, now=None):
    """Build the report and deliver it once. DeliveryError propagates to the caller."""
    audit = build_report(config, collector, now=now)
    sender.post(audit.payload)
    return audit
