"""
Alert delivery.

``log`` writes a structured log record, ``webhook`` POSTs
``{"alert": ..., "ruleId": ...}`` to the resolved target, and ``storage``
is satisfied by the persisted alert record itself.
"""

from __future__ import annotations

import httpx
from loguru import logger

from ..secrets import SecretsProvider, resolve_target
from .schema import AlertRecord, RuleDefinition

_LOG_LEVELS = {"info": "INFO", "warn": "WARNING", "critical": "CRITICAL"}


class AlertDispatcher:
    def __init__(
        self,
        provider: SecretsProvider,
        *,
        fallback_target: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        self.provider = provider
        self.fallback_target = fallback_target
        self.client = client
        self.timeout = timeout

    def _post(self, url: str, payload: dict) -> None:
        if self.client is not None:
            response = self.client.post(url, json=payload)
        else:
            response = httpx.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()

    def dispatch(self, alert: AlertRecord, rule: RuleDefinition) -> str:
        """
        Deliver one alert over the rule's channel.

        Returns:
            The channel used.

        Raises:
            ValueError: a webhook rule has no resolvable target.
            httpx.HTTPError: webhook delivery failed.
        """
        channel = rule.action.channel
        log = logger.bind(stage="rules-engine", ruleId=rule.id, alert=alert.id)

        if channel == "webhook":
            target = resolve_target(rule.action.target, self.provider, fallback=self.fallback_target)
            if not target:
                raise ValueError(f"rule {rule.id}: webhook target missing")
            self._post(target, {"alert": alert.to_dict(), "ruleId": rule.id})
            log.bind(target=rule.action.target or "fallback").info("dispatched webhook alert")
        elif channel == "storage":
            log.debug("alert stored")
        else:
            log.bind(alert_record=alert.to_dict()).log(_LOG_LEVELS.get(alert.severity, "INFO"), "alert logged")
        return channel
