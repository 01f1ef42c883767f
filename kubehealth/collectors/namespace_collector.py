"""
KubeHealth - Namespace Collection
Fetches every configured namespace concurrently and joins the results before evaluation.
"""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import List, Mapping, Protocol, Tuple

from kubehealth.models import CollectionError, CollectionErrorKind, PodSnapshot

logger = logging.getLogger(__name__)

# Hard ceiling on worker threads, whatever MAX_WORKERS says.
MAX_WORKER_CAP = 32

# A fetch makes two API calls, each bounded by the timeout, so a worker is
# busy for at most about twice the timeout. Queued namespaces get that long
# per round before they are given up on.
QUEUE_DEADLINE_FACTOR = 2

_WAIT_SLACK_SECONDS = 0.01


class Collector(Protocol):
    def fetch(self, namespace: str) -> List[PodSnapshot]:
        """Return the pods of one namespace or raise CollectionError."""
        ...


@dataclass(frozen=True)
class CollectionResult:
    snapshots: Mapping[str, Tuple[PodSnapshot, ...]]
    failures: Tuple[CollectionError, ...]

    @property
    def all_failed(self):
        return not self.snapshots and bool(self.failures)

    @property
    def pod_count(self):
        return sum(len(pods) for pods in self.snapshots.values())


def collect_namespaces(collector, namespaces, timeout, max_workers):
    """Fetch all namespaces in parallel and merge once every fetch has finished or timed out.

    The timeout applies to each namespace from the moment its own fetch
    starts. A fetch that runs past it is reported as MetricsUnavailable,
    and a namespace waiting for a free worker is not charged for that wait.
    """
    workers = max(1, min(len(namespaces), max_workers, MAX_WORKER_CAP))
    rounds = -(-len(namespaces) // workers)
    started_at = {}

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="collect")
    try:
        futures = {
            ns: executor.submit(_fetch_one, collector, ns, started_at) for ns in namespaces
        }
        begin = time.monotonic()
        queue_deadline = begin + timeout * rounds * QUEUE_DEADLINE_FACTOR
        overran = _await_fetches(futures, started_at, timeout, queue_deadline)
        elapsed = time.monotonic() - begin
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    snapshots = {}
    failures = []
    for ns in namespaces:
        future = futures[ns]
        if ns in overran:
            future.cancel()
            failures.append(_timed_out(ns, timeout, started=ns in started_at))
            continue

        outcome, fetch_seconds = future.result()
        if fetch_seconds > timeout:
            failures.append(_timed_out(ns, timeout))
        elif isinstance(outcome, CollectionError):
            failures.append(outcome)
        else:
            snapshots[ns] = tuple(outcome)

    for failure in failures:
        logger.warning(
            "Namespace %s unavailable: %s (%s)",
            failure.namespace, failure.kind.value, failure.reason,
        )
    logger.info(
        "Collected %d namespace(s) in %.2fs, %d failed",
        len(snapshots), elapsed, len(failures),
    )
    return CollectionResult(snapshots=snapshots, failures=tuple(failures))


# ---- Helper Functions ----

def _await_fetches(futures, started_at, timeout, queue_deadline):
    """Wait until every fetch is done or past its own deadline.

    Returns the namespaces given up on: started fetches older than the
    timeout, and anything still unfinished at the queue deadline.
    """
    pending = dict(futures)
    overran = set()

    while pending:
        now = time.monotonic()
        for ns, future in list(pending.items()):
            started = started_at.get(ns)
            if future.done():
                del pending[ns]
            elif (started is not None and now - started > timeout) or now >= queue_deadline:
                overran.add(ns)
                del pending[ns]
        if not pending:
            break

        deadlines = [started_at[ns] + timeout for ns in pending if ns in started_at]
        next_check = min(deadlines + [queue_deadline])
        wait(
            list(pending.values()),
            timeout=max(next_check - now, 0) + _WAIT_SLACK_SECONDS,
            return_when=FIRST_COMPLETED,
        )

    return overran


def _fetch_one(collector, namespace, started_at):
    """Run one fetch and time it. Errors are returned, never raised, so the join never sees exceptions."""
    start = time.monotonic()
    started_at[namespace] = start
    try:
        outcome = list(collector.fetch(namespace))
    except CollectionError as e:
        outcome = e
    except Exception as e:
        logger.exception("Unexpected error collecting namespace %s", namespace)
        outcome = CollectionError(
            namespace, CollectionErrorKind.NAMESPACE_UNREACHABLE, f"unexpected error: {e}"
        )
    return outcome, time.monotonic() - start


def _timed_out(namespace, timeout, started=True):
    if started:
        reason = f"timed out after {timeout:g}s"
    else:
        reason = "not started before the collection deadline"
    return CollectionError(namespace, CollectionErrorKind.METRICS_UNAVAILABLE, reason)
