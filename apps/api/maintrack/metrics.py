from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from time import monotonic


@dataclass
class RequestSample:
  ts: datetime
  method: str
  status_code: int
  latency_ms: float


class RuntimeMetrics:
  """Rolling 24h window of request outcomes for the system status endpoint."""

  def __init__(self) -> None:
    self._started_monotonic = monotonic()
    self._started_at = datetime.now(timezone.utc)
    self._samples: deque[RequestSample] = deque()
    self._lock = Lock()

  @property
  def started_at(self) -> datetime:
    return self._started_at

  def uptime_seconds(self) -> int:
    return max(0, int(monotonic() - self._started_monotonic))

  def observe_request(self, method: str, status_code: int, latency_ms: float) -> None:
    now = datetime.now(timezone.utc)
    with self._lock:
      self._samples.append(RequestSample(ts=now, method=method.upper(), status_code=status_code, latency_ms=latency_ms))
      self._prune_locked(now)

  def _prune_locked(self, now: datetime) -> None:
    cutoff = now - timedelta(hours=24)
    while self._samples and self._samples[0].ts < cutoff:
      self._samples.popleft()

  def reset(self) -> None:
    with self._lock:
      self._samples.clear()

  def snapshot(self) -> dict:
    now = datetime.now(timezone.utc)
    with self._lock:
      self._prune_locked(now)
      samples = list(self._samples)

    recent_cutoff = now - timedelta(minutes=15)
    recent = [s for s in samples if s.ts >= recent_cutoff]
    writes = [s for s in samples if s.method in ("POST", "PATCH", "PUT", "DELETE")]

    p95_ms = 0.0
    if samples:
      sorted_latencies = sorted(s.latency_ms for s in samples)
      idx = max(0, int(len(sorted_latencies) * 0.95) - 1)
      p95_ms = sorted_latencies[idx]

    server_errors = sum(1 for s in samples if s.status_code >= 500)
    return {
      "uptimeSeconds": self.uptime_seconds(),
      "startedAt": self._started_at.isoformat(),
      "p95LatencyMs24h": round(p95_ms, 2),
      "requestCount15m": len(recent),
      "requestCount24h": len(samples),
      "writeCount24h": len(writes),
      # 400s from validation or the database, not auth
      "rejectedWrites24h": sum(1 for s in writes if s.status_code == 400),
      "authDenied24h": sum(1 for s in samples if s.status_code in (401, 403)),
      "errorCount24h": server_errors,
      "errorRate24h": round((server_errors / len(samples)) * 100, 2) if samples else 0.0,
    }


runtime_metrics = RuntimeMetrics()
