"""Tests for metrics API usage and quantity parsing."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from kubehealth.collectors.metrics_collector import (
    build_usage_map,
    get_pod_usage,
    parse_cpu,
    parse_memory,
)
from kubehealth.models import ResourceAmounts


class TestParseCpu:
    @pytest.mark.parametrize(
        "quantity,expected",
        [
            ("1000000000n", 1000),
            ("500000000n", 500),
            ("1000000u", 1000),
            ("500000u", 500),
            ("100m", 100),
            ("1500m", 1500),
            ("1", 1000),
            ("0.5", 500),
            ("2.5", 2500),
            (" 250m ", 250),
        ],
    )
    def test_valid(self, quantity, expected) -> None:
        assert parse_cpu(quantity) == expected

    @pytest.mark.parametrize("quantity", ["", None, "invalid", "100x", "m"])
    def test_invalid(self, quantity) -> None:
        assert parse_cpu(quantity) is None


class TestParseMemory:
    @pytest.mark.parametrize(
        "quantity,expected",
        [
            ("1Ki", 1024),
            ("1Mi", 1024 ** 2),
            ("1Gi", 1024 ** 3),
            ("2.5Mi", int(2.5 * 1024 ** 2)),
            ("1K", 1000),
            ("1k", 1000),
            ("1M", 1000 ** 2),
            ("1G", 1000 ** 3),
            ("1024", 1024),
            ("500", 500),
        ],
    )
    def test_valid(self, quantity, expected) -> None:
        assert parse_memory(quantity) == expected

    @pytest.mark.parametrize("quantity", ["", None, "invalid", "100X", "Mi"])
    def test_invalid(self, quantity) -> None:
        assert parse_memory(quantity) is None


class TestUsage:
    def test_build_usage_map_sums_containers(self) -> None:
        items = [
            {
                "metadata": {"name": "web-1", "namespace": "prod-a"},
                "containers": [
                    {"name": "app", "usage": {"cpu": "400000000n", "memory": "300Mi"}},
                    {"name": "proxy", "usage": {"cpu": "60m", "memory": "100Mi"}},
                ],
            },
            {"metadata": {"name": "idle"}, "containers": []},
            {"metadata": {}, "containers": [{"usage": {"cpu": "1"}}]},
        ]

        usage = build_usage_map(items)

        assert usage == {
            "web-1": ResourceAmounts(cpu_millicores=460, memory_bytes=400 * 1024 ** 2),
            "idle": ResourceAmounts(cpu_millicores=0, memory_bytes=0),
        }

    def test_get_pod_usage_queries_namespace(self) -> None:
        custom_api = MagicMock()
        custom_api.list_namespaced_custom_object.return_value = {"items": []}

        assert get_pod_usage(custom_api, "prod-a", timeout=7) == {}

        custom_api.list_namespaced_custom_object.assert_called_once_with(
            group="metrics.k8s.io",
            version="v1beta1",
            plural="pods",
            namespace="prod-a",
            _request_timeout=7,
        )
