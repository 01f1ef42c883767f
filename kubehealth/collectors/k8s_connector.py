"""
KubeHealth - Kubernetes API Connector
Lists pods per namespace and turns them into PodSnapshots for the policy evaluator.
"""

import logging
from collections import namedtuple
from datetime import datetime, timezone

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from kubehealth.collectors.metrics_collector import get_pod_usage, parse_cpu, parse_memory
from kubehealth.models import (
    CollectionError,
    CollectionErrorKind,
    ContainerStatus,
    PodPhase,
    PodSnapshot,
    ResourceAmounts,
)

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (ApiException, HTTPError, OSError)

_RestartInfo = namedtuple("_RestartInfo", "reason exit_code message finished_at")


def connect():
    """Connect to Kubernetes cluster. Tries in-cluster first, then kubeconfig."""
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()

    return {
        "core": client.CoreV1Api(),
        "custom": client.CustomObjectsApi(),
    }


class KubernetesCollector:
    """Collector backed by the Kubernetes API and the metrics.k8s.io API."""

    def __init__(self, apis, fail_if_no_metrics=True, timeout=None):
        self.apis = apis
        self.fail_if_no_metrics = fail_if_no_metrics
        self.timeout = timeout

    def fetch(self, namespace):
        """Return the PodSnapshots of one namespace or raise CollectionError."""
        try:
            pod_list = self.apis["core"].list_namespaced_pod(
                namespace, _request_timeout=self.timeout
            )
        except _TRANSPORT_ERRORS as e:
            raise CollectionError(
                namespace, CollectionErrorKind.NAMESPACE_UNREACHABLE, _describe(e)
            ) from e

        try:
            usage = get_pod_usage(self.apis["custom"], namespace, timeout=self.timeout)
        except _TRANSPORT_ERRORS as e:
            if self.fail_if_no_metrics:
                raise CollectionError(
                    namespace, CollectionErrorKind.METRICS_UNAVAILABLE, _describe(e)
                ) from e
            logger.warning(
                "Metrics API unavailable for namespace %s (%s); continuing without usage",
                namespace, _describe(e),
            )
            usage = {}

        collected_at = datetime.now(timezone.utc)
        snapshots = [
            snapshot_from_pod(pod, usage.get(pod.metadata.name), collected_at)
            for pod in pod_list.items
            if pod.metadata and pod.metadata.name
        ]
        logger.debug("Collected %d pods from namespace %s", len(snapshots), namespace)
        return snapshots


def snapshot_from_pod(pod, usage=None, collected_at=None):
    """Build a PodSnapshot from a kubernetes V1Pod and its usage totals (if any)."""
    metadata = pod.metadata
    status = pod.status

    created = metadata.creation_timestamp
    if created is None:
        # Not yet persisted by the API server; treat it as brand new.
        created = collected_at or datetime.now(timezone.utc)

    containers = []
    if status and status.container_statuses:
        for cs in status.container_statuses:
            last = _last_restart_info(cs)
            containers.append(ContainerStatus(
                name=cs.name,
                restart_count=cs.restart_count or 0,
                last_reason=last.reason,
                last_exit_code=last.exit_code,
                last_message=last.message,
                last_restart_time=last.finished_at,
            ))

    return PodSnapshot(
        namespace=metadata.namespace,
        name=metadata.name,
        phase=PodPhase.parse(status.phase if status else None),
        creation_timestamp=_aware(created),
        containers=tuple(containers),
        resource_usage=usage,
        resource_requests=sum_requests(pod),
        start_time=_aware(status.start_time) if status and status.start_time else None,
    )


def sum_requests(pod):
    """Sum resource requests over all containers of the pod spec.

    A resource stays None unless at least one container declares it.
    Returns None when no container requests anything.
    """
    cpu_total = None
    mem_total = None

    if pod.spec and pod.spec.containers:
        for c in pod.spec.containers:
            requests = (c.resources.requests if c.resources else None) or {}
            cpu = parse_cpu(requests.get("cpu", ""))
            mem = parse_memory(requests.get("memory", ""))
            if cpu is not None:
                cpu_total = (cpu_total or 0) + cpu
            if mem is not None:
                mem_total = (mem_total or 0) + mem

    if cpu_total is None and mem_total is None:
        return None
    return ResourceAmounts(cpu_millicores=cpu_total, memory_bytes=mem_total)


# ---- Helper Functions ----

def _last_restart_info(cs):
    """Prefer lastState.terminated, fall back to the current waiting reason (e.g. CrashLoopBackOff)."""
    last_state = cs.last_state
    if last_state and last_state.terminated:
        term = last_state.terminated
        finished_at = _aware(term.finished_at) if term.finished_at else None
        return _RestartInfo(term.reason, term.exit_code, term.message, finished_at)
    if cs.state and cs.state.waiting:
        return _RestartInfo(cs.state.waiting.reason, None, cs.state.waiting.message, None)
    return _RestartInfo(None, None, None, None)


def _aware(timestamp):
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def _describe(error):
    if isinstance(error, ApiException):
        return f"HTTP {error.status} {error.reason}".strip()
    return str(error) or error.__class__.__name__
