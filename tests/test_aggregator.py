"""Tests for the finding aggregator."""

from __future__ import annotations

from datetime import timedelta

import pytest

from kubehealth.alerting.aggregator import aggregate, unavailable_finding
from kubehealth.models import (
    CANONICAL_KIND_ORDER,
    CollectionError,
    CollectionErrorKind,
    Finding,
    FindingKind,
    NamespaceUnavailable,
    NoMetrics,
    OverThreshold,
    PendingTooLong,
    ResourceType,
    RestartedContainer,
)


def _over(ns, pod, resource=ResourceType.CPU, percent=90.0):
    return Finding(namespace=ns, pod_name=pod, detail=OverThreshold(resource, percent, 90, 100))


def _restart(ns, pod, container="app", count=1):
    return Finding(namespace=ns, pod_name=pod, detail=RestartedContainer(container, count))


class TestAggregate:
    def test_every_kind_has_a_section(self, now) -> None:
        report = aggregate([], [], generated_at=now)

        assert list(report.sections) == list(CANONICAL_KIND_ORDER)
        assert all(report.section(kind) == () for kind in FindingKind)
        assert report.is_healthy
        assert report.generated_at == now

    def test_findings_sorted_by_namespace_then_pod(self, now) -> None:
        findings = [
            _over("prod-b", "api-2"),
            _over("prod-a", "web-2"),
            _over("prod-b", "api-1"),
            _over("prod-a", "web-1"),
        ]

        report = aggregate(findings, [], generated_at=now)

        ordered = [(f.namespace, f.pod_name) for f in report.section(FindingKind.OVER_THRESHOLD)]
        assert ordered == [
            ("prod-a", "web-1"),
            ("prod-a", "web-2"),
            ("prod-b", "api-1"),
            ("prod-b", "api-2"),
        ]

    def test_ties_broken_by_resource_and_container(self, now) -> None:
        findings = [
            _over("ns", "pod", ResourceType.MEMORY),
            _restart("ns", "pod", "zeta"),
            _over("ns", "pod", ResourceType.CPU),
            _restart("ns", "pod", "alpha"),
        ]

        report = aggregate(findings, [], generated_at=now)

        assert [f.detail.resource for f in report.section(FindingKind.OVER_THRESHOLD)] == [
            ResourceType.CPU, ResourceType.MEMORY,
        ]
        assert [f.detail.container for f in report.section(FindingKind.RESTARTED_CONTAINER)] == [
            "alpha", "zeta",
        ]

    def test_ordering_is_independent_of_input_order(self, now) -> None:
        findings = [_over(f"ns-{i % 3}", f"pod-{i}") for i in range(12)]

        forward = aggregate(findings, [], generated_at=now)
        backward = aggregate(list(reversed(findings)), [], generated_at=now)

        assert dict(forward.sections) == dict(backward.sections)

    def test_failures_become_namespace_unavailable(self, now) -> None:
        failures = [
            CollectionError("prod-b", CollectionErrorKind.METRICS_UNAVAILABLE, "HTTP 503"),
            CollectionError("prod-a", CollectionErrorKind.NAMESPACE_UNREACHABLE, "HTTP 403"),
        ]

        report = aggregate([], failures, generated_at=now)

        section = report.section(FindingKind.NAMESPACE_UNAVAILABLE)
        assert [(f.namespace, f.pod_name) for f in section] == [("prod-a", None), ("prod-b", None)]
        assert section[1].detail == NamespaceUnavailable(
            CollectionErrorKind.METRICS_UNAVAILABLE, "HTTP 503"
        )

    def test_nothing_suppressed_or_deduplicated(self, now) -> None:
        duplicate = _restart("ns", "pod")
        findings = [duplicate, duplicate, _over("ns", "pod")]

        report = aggregate(findings, [], generated_at=now)

        assert report.total == 3
        assert len(report.section(FindingKind.RESTARTED_CONTAINER)) == 2

    def test_sections_are_read_only(self, now) -> None:
        report = aggregate([_over("ns", "pod")], [], generated_at=now)

        with pytest.raises(TypeError):
            report.sections[FindingKind.OVER_THRESHOLD] = ()

    def test_cluster_name_and_counts(self, now) -> None:
        findings = [
            _over("ns", "a"),
            Finding("ns", PendingTooLong(timedelta(minutes=9), now), pod_name="b"),
            Finding("ns", NoMetrics(ResourceType.CPU, "no resource request"), pod_name="c"),
        ]

        report = aggregate(findings, [], generated_at=now, cluster_name="prod-eu")

        assert report.cluster_name == "prod-eu"
        assert report.counts() == {
            FindingKind.NAMESPACE_UNAVAILABLE: 0,
            FindingKind.OVER_THRESHOLD: 1,
            FindingKind.RESTARTED_CONTAINER: 0,
            FindingKind.PENDING_TOO_LONG: 1,
            FindingKind.NO_METRICS: 1,
        }


class TestFindingModel:
    def test_namespace_finding_sorts_before_pods_of_same_namespace(self) -> None:
        ns_level = unavailable_finding(
            CollectionError("prod-a", CollectionErrorKind.METRICS_UNAVAILABLE, "timeout")
        )
        pod_level = _over("prod-a", "aaa")
        other_ns = _over("prod-0", "zzz")

        ordered = sorted([pod_level, ns_level, other_ns], key=Finding.sort_key)

        assert ordered == [other_ns, ns_level, pod_level]

    def test_pod_name_required_for_pod_findings(self) -> None:
        with pytest.raises(ValueError):
            Finding(namespace="ns", detail=RestartedContainer("app", 1))

    def test_pod_name_forbidden_for_namespace_findings(self) -> None:
        with pytest.raises(ValueError):
            Finding(
                namespace="ns",
                pod_name="pod",
                detail=NamespaceUnavailable(CollectionErrorKind.NAMESPACE_UNREACHABLE, "x"),
            )

    def test_unknown_detail_rejected(self) -> None:
        with pytest.raises(TypeError):
            Finding(namespace="ns", pod_name="pod", detail="restarted")

    def test_target(self) -> None:
        assert _over("ns", "pod").target == "ns/pod"
        assert unavailable_finding(
            CollectionError("ns", CollectionErrorKind.NAMESPACE_UNREACHABLE, "x")
        ).target == "ns"
