"""
KubeHealth - Finding Aggregator
Merges pod findings and namespace failures into one Report, sectioned by kind and sorted.
"""

from types import MappingProxyType

from kubehealth.models import CANONICAL_KIND_ORDER, Finding, NamespaceUnavailable, Report


def unavailable_finding(error):
    """Turn a CollectionError into a namespace-level finding."""
    return Finding(
        namespace=error.namespace,
        detail=NamespaceUnavailable(error=error.kind, reason=error.reason),
    )


def aggregate(findings, failures, generated_at, cluster_name=None):
    """Build the run's Report.

    Every finding is kept exactly once; nothing is suppressed or deduplicated.
    Within a section, findings are ordered by namespace then pod, with
    namespace-level findings ahead of the pods of that namespace.
    """
    buckets = {kind: [] for kind in CANONICAL_KIND_ORDER}

    for finding in [unavailable_finding(error) for error in failures] + list(findings):
        buckets[finding.kind].append(finding)

    sections = MappingProxyType({
        kind: tuple(sorted(items, key=Finding.sort_key))
        for kind, items in buckets.items()
    })
    return Report(generated_at=generated_at, sections=sections, cluster_name=cluster_name)
