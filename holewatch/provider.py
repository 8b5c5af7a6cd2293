"""Metrics provider capabilities and the Pi-hole HTTP adapter.

The refresh core only sees the :class:`MetricsProvider` and
:class:`ProviderAdmin` protocols. :class:`PiHoleClient` and
:class:`PiHoleAdmin` implement them against the Pi-hole ``/admin/api.php``
endpoint.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests

from holewatch.models import MetricsSnapshot, Ranking, Summary, Target, TimeSeries, TopItems

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_TOP_LIMIT = 25


class ProviderError(RuntimeError):
    """Raised when a provider query or mutation fails for any reason."""


# ── Capabilities ───────────────────────────────────────────────────────────


class MetricsProvider(Protocol):
    def get_summary(self) -> Summary: ...

    def get_top_sources(self, limit: int | None = None) -> Ranking: ...

    def get_top_items(self, limit: int | None = None) -> TopItems: ...

    def get_time_series(self) -> TimeSeries: ...


class ProviderAdmin(Protocol):
    def enable(self) -> None: ...

    def disable(self, duration_seconds: int) -> None: ...


# ── Payload decoding ───────────────────────────────────────────────────────


def _as_ranking(payload: Any, key: str) -> Ranking:
    value = payload.get(key) if isinstance(payload, dict) else None
    if not isinstance(value, dict):
        raise ProviderError(f"response has no {key!r} mapping")
    try:
        return {str(label): int(count) for label, count in value.items()}
    except (TypeError, ValueError) as e:
        raise ProviderError(f"bad counts in {key!r}: {e}") from e


def parse_summary(payload: Any) -> Summary:
    """Build a :class:`Summary` from a ``summaryRaw`` response."""
    if not isinstance(payload, dict):
        raise ProviderError("summary response is not an object")
    try:
        return Summary(
            status=str(payload["status"]),
            privacy_level=int(payload["privacy_level"]),
            domains_being_blocked=int(payload["domains_being_blocked"]),
            dns_queries_today=int(payload["dns_queries_today"]),
            ads_blocked_today=int(payload["ads_blocked_today"]),
            ads_percentage_today=float(payload["ads_percentage_today"]),
            unique_domains=int(payload["unique_domains"]),
            queries_forwarded=int(payload["queries_forwarded"]),
            queries_cached=int(payload["queries_cached"]),
            unique_clients=int(payload["unique_clients"]),
            reply_nodata=int(payload.get("reply_NODATA", 0)),
            reply_nxdomain=int(payload.get("reply_NXDOMAIN", 0)),
            reply_cname=int(payload.get("reply_CNAME", 0)),
            reply_ip=int(payload.get("reply_IP", 0)),
        )
    except KeyError as e:
        raise ProviderError(f"summary response missing {e}") from e
    except (TypeError, ValueError) as e:
        raise ProviderError(f"bad summary value: {e}") from e


def parse_time_series(payload: Any) -> TimeSeries:
    """Build a chronological series from an ``overTimeData10mins`` response."""
    domains = _as_ranking(payload, "domains_over_time")
    try:
        series = [(int(ts), count) for ts, count in domains.items()]
    except ValueError as e:
        raise ProviderError(f"bad timestamp in series: {e}") from e
    series.sort()
    return series


# ── Pi-hole adapter ────────────────────────────────────────────────────────


class _PiHoleEndpoint:
    """Shared HTTP plumbing for the read and admin adapters."""

    def __init__(
        self,
        host: str,
        api_key: str | None = None,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.host = host.rstrip("/")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.host}/admin/api.php"

    def _get(self, params: dict[str, Any], *, auth: bool = False) -> Any:
        if auth:
            if self.api_key is None:
                raise ProviderError(f"{self.host}: query requires an api_key")
            params = {**params, "auth": self.api_key}
        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise ProviderError(f"{self.host}: {e}") from e
        except ValueError as e:
            raise ProviderError(f"{self.host}: response is not JSON") from e


class PiHoleClient(_PiHoleEndpoint):
    """Read-only metrics queries. Top lists need ``api_key`` to be set."""

    def get_summary(self) -> Summary:
        return parse_summary(self._get({"summaryRaw": ""}))

    def get_top_sources(self, limit: int | None = None) -> Ranking:
        payload = self._get({"topClients": limit or DEFAULT_TOP_LIMIT}, auth=True)
        return _as_ranking(payload, "top_sources")

    def get_top_items(self, limit: int | None = None) -> TopItems:
        payload = self._get({"topItems": limit or DEFAULT_TOP_LIMIT}, auth=True)
        return TopItems(
            top_queries=_as_ranking(payload, "top_queries"),
            top_ads=_as_ranking(payload, "top_ads"),
        )

    def get_time_series(self) -> TimeSeries:
        return parse_time_series(self._get({"overTimeData10mins": ""}))


class PiHoleAdmin(_PiHoleEndpoint):
    """Blocking on/off switch. Only built for targets with an api_key."""

    def _switch(self, params: dict[str, Any], expected: str) -> None:
        payload = self._get(params, auth=True)
        # Pi-hole answers a rejected key with an empty list
        status = payload.get("status") if isinstance(payload, dict) else None
        if status != expected:
            raise ProviderError(f"{self.host}: request rejected (status={status!r})")
        logger.info("%s: blocking %s", self.host, expected)

    def enable(self) -> None:
        self._switch({"enable": ""}, "enabled")

    def disable(self, duration_seconds: int) -> None:
        self._switch({"disable": int(duration_seconds)}, "disabled")


# ── Factories ──────────────────────────────────────────────────────────────


def make_client(target: Target, timeout: float = DEFAULT_TIMEOUT) -> PiHoleClient:
    return PiHoleClient(target.endpoint, target.credential, timeout=timeout)


def make_admin(target: Target, timeout: float = DEFAULT_TIMEOUT) -> PiHoleAdmin | None:
    """Return the admin capability for *target*, or None when it has no key."""
    if target.credential is None:
        return None
    return PiHoleAdmin(target.endpoint, target.credential, timeout=timeout)


def fetch_snapshot(
    client: MetricsProvider,
    *,
    authenticated: bool,
    top_limit: int | None = DEFAULT_TOP_LIMIT,
) -> MetricsSnapshot:
    """Run every sub-query independently and keep whichever succeed.

    Never raises: a failing sub-query only leaves its field absent. Top lists
    are skipped entirely for unauthenticated clients.
    """

    def attempt(name: str, query: Any, *args: Any) -> Any:
        try:
            return query(*args)
        except ProviderError as e:
            logger.warning("%s query failed: %s", name, e)
        except Exception:
            logger.exception("%s query raised unexpectedly", name)
        return None

    return MetricsSnapshot(
        summary=attempt("summary", client.get_summary),
        top_sources=(
            attempt("top_sources", client.get_top_sources, top_limit)
            if authenticated
            else None
        ),
        top_items=(
            attempt("top_items", client.get_top_items, top_limit)
            if authenticated
            else None
        ),
        series=attempt("series", client.get_time_series),
    )
