"""
KubeHealth - Policy Evaluator
Detects problems on a single pod: usage over request, restarted containers, pods stuck in Pending.
Pure functions of (pod, config, now); nothing here touches the cluster.
"""

from datetime import timedelta

from kubehealth.config import AGE_REFERENCE_START
from kubehealth.models import (
    Finding,
    NoMetrics,
    OverThreshold,
    PendingTooLong,
    PodPhase,
    ResourceType,
    RestartedContainer,
)

REASON_NO_REQUEST = "no resource request"
REASON_NO_USAGE = "usage unavailable"


def evaluate(pod, config, now):
    """Evaluate one pod snapshot and return its findings."""
    findings = []
    findings.extend(_check_resource_usage(pod, config))
    findings.extend(_check_restart_counts(pod, config, now))
    findings.extend(_check_pod_status(pod, config, now))
    return findings


def evaluate_all(snapshots, config, now):
    """Evaluate every pod of every collected namespace, in collection order."""
    findings = []
    for pods in snapshots.values():
        for pod in pods:
            findings.extend(evaluate(pod, config, now))
    return findings


def pod_age(pod, config, now):
    """Age of the pod measured from the configured reference point."""
    reference = pod.creation_timestamp
    if config.age_reference == AGE_REFERENCE_START and pod.start_time is not None:
        reference = pod.start_time
    return now - reference


def usage_percent(usage, request):
    """Usage as a percentage of request, or None when there is no usable request."""
    if not request or usage is None:
        return None
    return usage * 100 / request


def _check_resource_usage(pod, config):
    """Check CPU and memory independently against the threshold."""
    findings = []
    requests = pod.resource_requests
    usage = pod.resource_usage

    for resource in ResourceType:
        request = requests.get(resource) if requests else None
        if not request:
            if config.fail_if_no_metrics:
                findings.append(_finding(pod, NoMetrics(resource, REASON_NO_REQUEST)))
            continue

        used = usage.get(resource) if usage else None
        if used is None:
            if config.fail_if_no_metrics:
                findings.append(_finding(pod, NoMetrics(resource, REASON_NO_USAGE)))
            continue

        percent = usage_percent(used, request)
        if percent >= config.threshold_percent:
            findings.append(_finding(pod, OverThreshold(
                resource=resource, percent=percent, usage=used, request=request,
            )))

    return findings


def _check_restart_counts(pod, config, now):
    """One finding per restarted container, once the pod is past the restart grace period."""
    if pod_age(pod, config, now) < timedelta(minutes=config.restart_grace_minutes):
        return []

    return [
        _finding(pod, RestartedContainer(
            container=c.name,
            restart_count=c.restart_count,
            last_reason=c.last_reason,
            last_exit_code=c.last_exit_code,
            last_message=c.last_message,
            last_restart_time=c.last_restart_time,
        ))
        for c in pod.containers
        if c.restart_count > 0
    ]


def _check_pod_status(pod, config, now):
    """Check for pods stuck in Pending beyond the pending grace period."""
    if pod.phase is not PodPhase.PENDING:
        return []

    elapsed = pod_age(pod, config, now)
    if elapsed < timedelta(minutes=config.pending_grace_minutes):
        return []

    return [_finding(pod, PendingTooLong(elapsed=elapsed, since=now - elapsed))]


def _finding(pod, detail):
    return Finding(namespace=pod.namespace, pod_name=pod.name, detail=detail)
