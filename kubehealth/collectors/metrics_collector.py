"""
KubeHealth - Metrics Collector
Reads pod CPU/memory usage from the Kubernetes metrics API and parses resource quantities.
"""

import logging

from kubehealth.models import ResourceAmounts

logger = logging.getLogger(__name__)

METRICS_GROUP = "metrics.k8s.io"
METRICS_VERSION = "v1beta1"

# Binary suffixes are checked before decimal ones so "Mi" never matches "M".
_MEMORY_UNITS = (
    ("Ki", 1024),
    ("Mi", 1024 ** 2),
    ("Gi", 1024 ** 3),
    ("Ti", 1024 ** 4),
    ("Pi", 1024 ** 5),
    ("Ei", 1024 ** 6),
    ("k", 1000),
    ("K", 1000),
    ("M", 1000 ** 2),
    ("G", 1000 ** 3),
    ("T", 1000 ** 4),
    ("P", 1000 ** 5),
    ("E", 1000 ** 6),
)


def get_pod_usage(custom_api, namespace, timeout=None):
    """Get CPU/Memory usage per pod in a namespace, keyed by pod name.

    Errors from the metrics API propagate; the caller decides whether missing
    metrics fail the namespace.
    """
    metrics = custom_api.list_namespaced_custom_object(
        group=METRICS_GROUP,
        version=METRICS_VERSION,
        plural="pods",
        namespace=namespace,
        _request_timeout=timeout,
    )
    return build_usage_map(metrics.get("items", []))


def build_usage_map(items):
    """Sum container usage per pod from raw metrics API items."""
    usage = {}
    for pod in items:
        name = (pod.get("metadata") or {}).get("name")
        if not name:
            continue

        total_cpu = 0
        total_mem = 0
        for container in pod.get("containers", []):
            container_usage = container.get("usage") or {}
            cpu = parse_cpu(container_usage.get("cpu", ""))
            mem = parse_memory(container_usage.get("memory", ""))
            if cpu is not None:
                total_cpu += cpu
            if mem is not None:
                total_mem += mem

        usage[name] = ResourceAmounts(cpu_millicores=total_cpu, memory_bytes=total_mem)

    return usage


# ---- Quantity Parsing ----

def parse_cpu(cpu_string):
    """Parse a CPU quantity to millicores. E.g., '250m' -> 250, '1.5' -> 1500, '500000000n' -> 500

    Returns None when the quantity cannot be parsed.
    """
    value = (cpu_string or "").strip()
    if not value:
        return None
    try:
        if value.endswith("n"):
            return int(float(value[:-1]) / 1_000_000)
        elif value.endswith("u"):
            return int(float(value[:-1]) / 1000)
        elif value.endswith("m"):
            return int(round(float(value[:-1])))
        else:
            return int(round(float(value) * 1000))
    except (ValueError, OverflowError):
        logger.debug("Ignoring unparseable CPU quantity %r", cpu_string)
        return None


def parse_memory(mem_string):
    """Parse a memory quantity to bytes. E.g., '128Mi' -> 134217728, '1k' -> 1000

    Returns None when the quantity cannot be parsed.
    """
    value = (mem_string or "").strip()
    if not value:
        return None
    try:
        for suffix, multiplier in _MEMORY_UNITS:
            if value.endswith(suffix):
                return int(round(float(value[:-len(suffix)]) * multiplier))
        return int(round(float(value)))
    except (ValueError, OverflowError):
        logger.debug("Ignoring unparseable memory quantity %r", mem_string)
        return None
