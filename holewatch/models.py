"""Data types shared by the refresh core, the provider client and the UI."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace

# ── Aliases ────────────────────────────────────────────────────────────────

# label -> count, unordered; use aggregate.sort_ranking before display
Ranking = dict[str, int]

# (epoch seconds, count), unique timestamps
TimeSeries = list[tuple[int, int]]


# ── Targets ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Target:
    """One monitored server, immutable once loaded from config."""

    id: int
    display_name: str
    endpoint: str  # base URL, e.g. "http://192.168.0.2"
    credential: str | None = None

    @property
    def can_mutate(self) -> bool:
        return self.credential is not None


# ── Metrics ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Summary:
    """Headline counters reported by the provider."""

    status: str
    privacy_level: int
    domains_being_blocked: int
    dns_queries_today: int
    ads_blocked_today: int
    ads_percentage_today: float
    unique_domains: int
    queries_forwarded: int
    queries_cached: int
    unique_clients: int
    reply_nodata: int = 0
    reply_nxdomain: int = 0
    reply_cname: int = 0
    reply_ip: int = 0

    @property
    def enabled(self) -> bool:
        return self.status == "enabled"


@dataclass(frozen=True)
class TopItems:
    """Both leaderboards returned by a single top-items query."""

    top_queries: Ranking = field(default_factory=lambda: Ranking())
    top_ads: Ranking = field(default_factory=lambda: Ranking())


@dataclass(frozen=True)
class MetricsSnapshot:
    """Latest metrics bundle for one target.

    Every field is optional on its own: a failed sub-query leaves its field
    as ``None`` without affecting the others.
    """

    summary: Summary | None = None
    top_sources: Ranking | None = None
    top_items: TopItems | None = None
    series: TimeSeries | None = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def merged_over(self, previous: MetricsSnapshot) -> MetricsSnapshot:
        """Return a new snapshot preferring our fields, falling back to *previous*."""
        fallback = {
            f.name: getattr(previous, f.name)
            for f in fields(self)
            if getattr(self, f.name) is None
        }
        return replace(self, **fallback)


# ── Refresh lifecycle ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class Idle:
    """No fetch outstanding. ``last_update`` is a monotonic timestamp."""

    last_update: float


@dataclass(frozen=True)
class InFlight:
    """A background fetch is running."""

    started_at: float


RefreshState = Idle | InFlight
