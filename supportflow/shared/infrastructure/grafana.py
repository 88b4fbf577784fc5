"""
Grafana OTLP Metrics Exporter
==============================

Pushes usage metrics to Grafana Cloud via OTLP.

Metrics exported:
- llm_tokens_total / llm_prompt_tokens / llm_completion_tokens
- llm_latency_ms: chat-completion and embedding latency
- support_route_confidence / support_route_latency_ms: one point per routed ticket

The exporter is created once at startup and handed to the components that
report through it. Export is best-effort: a failed push is logged and
reported as False, never raised into the request.
"""

import base64
import time
from typing import Optional, Dict, Any, List

import httpx

from supportflow.config import settings
from supportflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _gauge(name: str, unit: str, description: str, value: Any, attributes: List[dict]) -> dict:
    timestamp_ns = int(time.time() * 1_000_000_000)
    point = {"timeUnixNano": timestamp_ns, "attributes": attributes}
    if isinstance(value, float):
        point["asDouble"] = value
    else:
        point["asInt"] = int(value)
    return {
        "name": name,
        "unit": unit,
        "description": description,
        "gauge": {"dataPoints": [point]},
    }


class GrafanaOTLPExporter:
    """
    Push gauges to a Grafana Cloud OTLP gateway.

    Disabled unless host, api key and instance id are all set; every
    export call is then a no-op returning False.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None
    ):
        self._host = host
        self._api_key = api_key
        self._instance_id = instance_id
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            base = self._host.rstrip("/")
            self._url = base if base.endswith("/otlp/v1/metrics") else f"{base}/otlp/v1/metrics"
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.info(
                "Grafana OTLP exporter disabled",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id)
                }
            )

    @classmethod
    def from_settings(cls) -> "GrafanaOTLPExporter":
        return cls(
            host=settings.grafana_host,
            api_key=settings.grafana_api_key,
            instance_id=settings.grafana_instance_id,
        )

    def is_enabled(self) -> bool:
        """True when all three credentials are configured."""
        return self._enabled

    @staticmethod
    def _attributes(base: Dict[str, Any], extra: Optional[Dict[str, str]]) -> List[dict]:
        merged = {"service": settings.app_name, **base, **(extra or {})}
        return [
            {"key": key, "value": {"stringValue": str(value)}}
            for key, value in merged.items()
        ]

    async def _push(self, metrics: List[dict]) -> bool:
        payload = {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": [
                            {"key": "service.name", "value": {"stringValue": settings.app_name}},
                            {"key": "service.version", "value": {"stringValue": settings.app_version}},
                            {"key": "deployment.environment", "value": {"stringValue": settings.environment}},
                        ]
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error exporting metrics to Grafana", extra={"error": str(e)})
            return False

        if response.status_code in (200, 202):
            logger.debug(
                "Metrics exported to Grafana",
                extra={"metrics_count": len(metrics), "status_code": response.status_code}
            )
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "status_code": response.status_code,
                "response": response.text[:500],
                "url": self._url
            }
        )
        return False

    async def export_llm_metrics(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        operation: str = "chat_completion",
        attributes: Optional[Dict[str, str]] = None
    ) -> bool:
        """
        Export LLM usage metrics to Grafana.

        Args:
            model: Model name
            prompt_tokens: Number of prompt tokens used
            completion_tokens: Number of completion tokens generated
            latency_ms: Request latency in milliseconds
            operation: Operation type (support_draft, embedding, ...)
            attributes: Additional attributes to attach to metrics

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            return False

        attrs = self._attributes({"model": model, "operation": operation}, attributes)
        return await self._push([
            _gauge("llm_tokens_total", "1", "Total tokens used in LLM requests",
                   prompt_tokens + completion_tokens, attrs),
            _gauge("llm_latency_ms", "ms", "LLM request latency in milliseconds", latency_ms, attrs),
            _gauge("llm_prompt_tokens", "1", "Number of prompt tokens in LLM requests", prompt_tokens, attrs),
            _gauge("llm_completion_tokens", "1", "Number of completion tokens generated",
                   completion_tokens, attrs),
        ])

    async def export_routing_metrics(
        self,
        tenant_id: str,
        outcome: str,
        confidence: Optional[float],
        latency_ms: int,
        retrieval_tier: Optional[str] = None
    ) -> bool:
        """Export one data point for a routed (or failed) support ticket."""
        if not self._enabled:
            return False

        attrs = self._attributes(
            {"tenant_id": tenant_id, "outcome": outcome, "retrieval_tier": retrieval_tier or "none"},
            None
        )
        metrics = [
            _gauge("support_route_latency_ms", "ms", "Ticket routing latency", latency_ms, attrs),
        ]
        if confidence is not None:
            metrics.append(
                _gauge("support_route_confidence", "1", "Final routing confidence", float(confidence), attrs)
            )
        return await self._push(metrics)
