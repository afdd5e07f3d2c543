"""
In-process studio metrics, served by GET /metrics.

  counters  gateway outcomes (requests.generate, generations.*, errors.*) and lookbook saves
  stages    per-stage outcomes: completed / failed / crashed / cancelled
  latency   gateway calls and whole stage runs, last 100 samples each (ms)
  sessions  open studio sessions

Nothing here is durable; lookbooks and usage counts live in Supabase.
"""

import time
import threading
from collections import Counter, defaultdict, deque

MAX_SAMPLES = 100
MAX_ERRORS = 50

_lock = threading.Lock()
_counters: Counter = Counter()
_stages: dict[str, Counter] = defaultdict(Counter)
_latency: dict[str, deque] = defaultdict(lambda: deque(maxlen=MAX_SAMPLES))
_errors: deque = deque(maxlen=MAX_ERRORS)
_sessions = 0
_started_at = time.time()


def inc_counter(name: str, amount: int = 1):
    with _lock:
        _counters[name] += amount


def get_counter(name: str) -> int:
    with _lock:
        return _counters[name]


def record_stage(stage: str, outcome: str, duration_ms: float):
    """One finished (or abandoned) generating stage."""
    with _lock:
        _stages[stage][outcome] += 1
        _latency[f"stage.{stage}"].append(duration_ms)


def get_stage_count(stage: str, outcome: str) -> int:
    with _lock:
        return _stages[stage][outcome]


def record_latency(name: str, duration_ms: float):
    with _lock:
        _latency[name].append(duration_ms)


def set_sessions(count: int):
    global _sessions
    with _lock:
        _sessions = count


def record_error(source: str, error_type: str, message: str, session_id: str = ""):
    with _lock:
        _errors.append({
            "timestamp": time.time(),
            "source": source,
            "error_type": error_type,
            "message": message[:300],
            "session_id": session_id,
        })


def reset():
    """Start from zero. Called by the app lifespan and by tests."""
    global _sessions, _started_at
    with _lock:
        _counters.clear()
        _stages.clear()
        _latency.clear()
        _errors.clear()
        _sessions = 0
        _started_at = time.time()


def _percentiles(samples) -> dict:
    ordered = sorted(samples)
    n = len(ordered)
    return {
        "p50": ordered[n // 2],
        "p95": ordered[min(n - 1, int(n * 0.95))],
        "count": n,
    }


def get_snapshot() -> dict:
    with _lock:
        requests = _counters["requests.generate"]
        failed = _counters["errors.rate_limited"] + _counters["errors.transport"]
        return {
            "counters": dict(_counters),
            "stages": {stage: dict(outcomes) for stage, outcomes in _stages.items()},
            "latency": {name: _percentiles(s) for name, s in _latency.items() if s},
            "sessions": _sessions,
            "gateway_failure_rate": round(failed / requests * 100, 2) if requests else 0.0,
            "recent_errors": list(_errors)[-10:],
            "uptime_seconds": time.time() - _started_at,
        }
