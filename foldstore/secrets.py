"""
Secret references for delivery targets.

Webhook and feed targets are configured as references, not raw values, so
rule documents and settings never carry credentials in the clear:

- ``env://VAR_NAME``: environment variable
- ``sm://SECRET_NAME``: latest version in Secret Manager (configured project)
- ``sm://projects/P/secrets/S/versions/V``: an explicit Secret Manager version

Anything else is used as a literal value. Logs only ever carry the
reference.
"""

from __future__ import annotations

import os
import threading
from typing import Any, Mapping, Protocol

from loguru import logger


class SecretsProvider(Protocol):
    """Anything that can turn a target reference into a value."""

    def supports(self, ref: str) -> bool:
        """True if this provider can resolve the reference."""
        ...

    def get(self, ref: str) -> str | None:
        """
        Look up the value behind a reference.

        Returns:
            The value, or None when the reference does not resolve.
        """
        ...


class EnvSecretsProvider:
    """
    Look up ``env://`` references in the process environment.

    Example: ``env://ALERTS_TOKEN`` resolves to ``os.environ["ALERTS_TOKEN"]``.
    """

    PREFIX = "env://"

    def __init__(self, environ: Mapping[str, str] | None = None):
        self.environ = environ

    def supports(self, ref: str) -> bool:
        return ref.startswith(self.PREFIX)

    def get(self, ref: str) -> str | None:
        if not self.supports(ref):
            return None
        env = os.environ if self.environ is None else self.environ
        value = env.get(ref[len(self.PREFIX) :])
        return value or None


class SecretManagerProvider:
    """
    Resolve ``sm://`` references through Google Secret Manager.

    The client is created on first use.
    """

    PREFIX = "sm://"

    def __init__(self, project: str | None = None, *, client: Any = None):
        self.project = project
        self._client = client
        self._lock = threading.Lock()

    def _get_client(self) -> Any:
        if self._client is None:
            with self._lock:
                if self._client is None:
                    from google.cloud import secretmanager

                    self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def supports(self, ref: str) -> bool:
        return ref.startswith(self.PREFIX)

    def secret_version_name(self, ref: str) -> str:
        normalized = ref[len(self.PREFIX) :]
        if "/secrets/" in normalized:
            return normalized
        if not self.project:
            raise ValueError("no project configured for secret resolution")
        return f"projects/{self.project}/secrets/{normalized}/versions/latest"

    def get(self, ref: str) -> str | None:
        if not self.supports(ref):
            return None
        from google.api_core import exceptions as gexc
        from google.auth import exceptions as auth_exc

        try:
            version = self.secret_version_name(ref)
            response = self._get_client().access_secret_version(request={"name": version})
        except (ValueError, gexc.GoogleAPICallError, auth_exc.GoogleAuthError) as e:
            logger.bind(target=ref, error=str(e)).error("secret lookup failed")
            return None
        value = response.payload.data.decode("utf-8").strip()
        return value or None


class CompositeSecretsProvider:
    """
    Chain of providers consulted in order.

    The first provider that supports a reference and returns a value wins.
    """

    def __init__(self, providers: list[SecretsProvider] | None = None):
        self.providers = providers if providers is not None else [EnvSecretsProvider()]

    def supports(self, ref: str) -> bool:
        return any(p.supports(ref) for p in self.providers)

    def get(self, ref: str) -> str | None:
        for provider in self.providers:
            if provider.supports(ref):
                value = provider.get(ref)
                if value is not None:
                    return value
        return None


def default_provider(project: str | None = None) -> CompositeSecretsProvider:
    return CompositeSecretsProvider([EnvSecretsProvider(), SecretManagerProvider(project)])


def resolve_target(
    target: str | None,
    provider: SecretsProvider,
    *,
    fallback: str | None = None,
) -> str | None:
    """
    Resolve a delivery target.

    Args:
        target: Literal URL or secret reference; None uses `fallback`
        provider: Provider for references
        fallback: Value (or reference) used when no target is given

    Returns:
        The resolved value, or None when nothing is configured.
    """
    ref = target or fallback
    if not ref:
        return None
    if provider.supports(ref):
        value = provider.get(ref)
        if value is None:
            logger.bind(target=ref).warning("secret reference did not resolve")
        return value
    return ref
