"""
Client for the Prometheus HTTP query API.

Only instant queries are issued. Every request is bounded by the configured
timeout.
"""
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from promproxy.app.core.metrics import metrics

logger = logging.getLogger(__name__)

CPU_USAGE_METRIC = "container_cpu_usage_seconds_total"


class PrometheusError(Exception):
    """Base class for failed upstream queries."""


class UpstreamUnavailableError(PrometheusError):
    """Prometheus could not be reached or did not answer in time."""


class PrometheusQueryError(PrometheusError):
    """Prometheus answered but the query failed or the result was unusable."""


class NoDataError(PrometheusError):
    """The query succeeded but returned no samples."""


@dataclass
class Sample:
    metric: Dict[str, str]
    timestamp: float
    value: float


@dataclass
class QueryResult:
    result_type: str
    samples: List[Sample] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_cpu_usage_query(container_name: str, seconds: int) -> str:
    """Average CPU usage (percent) of one container; avg keeps it to one sample."""
    return (
        f'avg(rate({CPU_USAGE_METRIC}{{name="{_escape_label_value(container_name)}"}}'
        f"[{seconds}s])) * 100"
    )


def build_cpu_load_by_prefix_query(container_name_prefix: str, seconds: int) -> str:
    """Per-container CPU usage (percent) for every container whose name starts with the prefix."""
    pattern = _escape_label_value(re.escape(container_name_prefix))
    return (
        f'rate({CPU_USAGE_METRIC}{{image!="",name=~"{pattern}.*"}}'
        f"[{seconds}s]) * 100"
    )


def _parse_vector(result: Any) -> List[Sample]:
    samples: List[Sample] = []
    for item in result:
        try:
            timestamp, value = item["value"]
            samples.append(
                Sample(
                    metric=dict(item.get("metric", {})),
                    timestamp=float(timestamp),
                    value=float(value),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise PrometheusQueryError(f"malformed sample in query result: {item!r}") from e
    return samples


class PrometheusClient:
    def __init__(self, base_url: str, timeout_sec: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_sec

    async def query(self, expr: str, eval_time: Optional[float] = None) -> QueryResult:
        """Run an instant query, evaluated now unless eval_time is given."""
        if eval_time is None:
            eval_time = time.time()
        url = f"{self._base_url}/api/v1/query"
        params = {"query": expr, "time": f"{eval_time:.3f}"}
        start_time = time.time()
        try:
            result = await self._query(url, params)
        except PrometheusError as e:
            metrics.record_upstream_query(time.time() - start_time, type(e).__name__)
            raise
        metrics.record_upstream_query(time.time() - start_time)
        return result

    async def _query(self, url: str, params: Dict[str, str]) -> QueryResult:
        logger.debug(f"Querying Prometheus: {params['query']}")
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
                response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            logger.warning(f"Prometheus query timed out after {self._timeout}s")
            raise UpstreamUnavailableError(
                f"prometheus query timed out after {self._timeout}s"
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Prometheus unreachable at {self._base_url}: {e}")
            raise UpstreamUnavailableError(f"prometheus unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise PrometheusQueryError(
                f"invalid response from prometheus (HTTP {response.status_code})"
            ) from e
        if not isinstance(payload, dict):
            raise PrometheusQueryError(
                f"invalid response from prometheus (HTTP {response.status_code})"
            )

        warnings = payload.get("warnings") or []
        if not isinstance(warnings, list):
            raise PrometheusQueryError("invalid response from prometheus: malformed warnings")
        warnings = [str(w) for w in warnings]
        if warnings:
            logger.warning(f"Prometheus warnings: {warnings}")

        if payload.get("status") != "success":
            error_type = payload.get("errorType", "unknown")
            error = payload.get("error") or f"query failed with HTTP {response.status_code}"
            logger.warning(f"Prometheus query failed ({error_type}): {error}")
            raise PrometheusQueryError(str(error))

        data = payload.get("data")
        if not isinstance(data, dict):
            raise PrometheusQueryError("invalid response from prometheus: missing data")
        result_type = str(data.get("resultType", ""))
        if result_type != "vector":
            return QueryResult(result_type=result_type, warnings=warnings)

        result = data.get("result") or []
        if not isinstance(result, list):
            raise PrometheusQueryError("invalid response from prometheus: malformed vector")
        return QueryResult(
            result_type=result_type,
            samples=_parse_vector(result),
            warnings=warnings,
        )

    async def query_average_cpu(self, container_name: str, seconds: int) -> float:
        """Average CPU usage in percent of one container over the trailing window."""
        result = await self.query(build_cpu_usage_query(container_name, seconds))
        if result.result_type == "vector" and result.samples:
            value = result.samples[0].value
            if math.isfinite(value):
                return value
        raise NoDataError(f"no data found for container: {container_name}")

    async def query_average_cpu_by_prefix(
        self, container_name_prefix: str, seconds: int
    ) -> Dict[str, float]:
        """CPU usage in percent keyed by container name, for names matching the prefix."""
        result = await self.query(
            build_cpu_load_by_prefix_query(container_name_prefix, seconds)
        )
        if result.result_type != "vector":
            raise PrometheusQueryError(f"unexpected result type: {result.result_type}")

        avg_cpu: Dict[str, float] = {}
        for sample in result.samples:
            avg_cpu[sample.metric.get("name", "")] = sample.value
        return avg_cpu
