"""Shared fixtures for KubeHealth tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from kubehealth.config import Config
from kubehealth.models import ContainerStatus, PodPhase, PodSnapshot, ResourceAmounts

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)
WEBHOOK_URL = "https://hooks.slack.com/services/T000/B000/secret-token"

MI = 1024 ** 2


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def webhook_url() -> str:
    return WEBHOOK_URL


@pytest.fixture
def config_factory():
    """Build a Config with test-friendly defaults."""

    def _make(**overrides) -> Config:
        values = {
            "namespaces": ("prod-a",),
            "slack_webhook_url": WEBHOOK_URL,
            "threshold_percent": 85.0,
            "restart_grace_minutes": 5.0,
            "pending_grace_minutes": 5.0,
            "fail_if_no_metrics": False,
        }
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def pod_factory():
    """Build a PodSnapshot aged `age_minutes` relative to NOW."""

    def _make(
        name: str = "web-1",
        namespace: str = "prod-a",
        phase: PodPhase = PodPhase.RUNNING,
        age_minutes: float = 60,
        containers: tuple = (),
        usage: ResourceAmounts | None = None,
        requests: ResourceAmounts | None = None,
        start_time: datetime | None = None,
    ) -> PodSnapshot:
        return PodSnapshot(
            namespace=namespace,
            name=name,
            phase=phase,
            creation_timestamp=NOW - timedelta(minutes=age_minutes),
            containers=tuple(containers),
            resource_usage=usage,
            resource_requests=requests,
            start_time=start_time,
        )

    return _make


@pytest.fixture
def container():
    def _make(name: str = "app", restarts: int = 0, **kwargs) -> ContainerStatus:
        return ContainerStatus(name=name, restart_count=restarts, **kwargs)

    return _make
