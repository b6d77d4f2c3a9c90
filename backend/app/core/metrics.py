from __future__ import annotations
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Tuple

LabelKey = Tuple[Tuple[str, str], ...]


def _key(labels: Optional[Dict[str, str]]) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


def _label_str(key: LabelKey) -> str:
    return ",".join(f'{k}="{v}"' for k, v in key)


# ---------- Primitives ----------

class _Counter:
    def __init__(self, name: str, help_: str = ""):
        self.name = name
        self.help = help_
        self._lock = threading.Lock()
        self._values: Dict[LabelKey, int] = defaultdict(int)

    def inc(self, labels: Optional[Dict[str, str]] = None, by: int = 1) -> None:
        with self._lock:
            self._values[_key(labels)] += by

    def value(self, labels: Optional[Dict[str, str]] = None) -> int:
        with self._lock:
            return self._values.get(_key(labels), 0)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def render(self) -> Iterable[str]:
        if self.help:
            yield f"# HELP {self.name} {self.help}\n# TYPE {self.name} counter\n"
        with self._lock:
            items = sorted(self._values.items())
        for key, v in items:
            if key:
                yield f"{self.name}{{{_label_str(key)}}} {v}\n"
            else:
                yield f"{self.name} {v}\n"


class _Histogram:
    DEFAULT_BUCKETS = [0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 20]  # seconds

    def __init__(self, name: str, help_: str = "", buckets: Optional[Iterable[float]] = None):
        self.name = name
        self.help = help_
        self._lock = threading.Lock()
        self._buckets = sorted(buckets or self.DEFAULT_BUCKETS)
        self._counts: Dict[LabelKey, Dict[float, float]] = defaultdict(lambda: defaultdict(float))
        self._sum: Dict[LabelKey, float] = defaultdict(float)
        self._obs: Dict[LabelKey, float] = defaultdict(float)

    def observe(self, value_seconds: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = _key(labels)
        with self._lock:
            self._sum[key] += value_seconds
            self._obs[key] += 1
            # first bucket that fits; render() accumulates
            for b in self._buckets:
                if value_seconds <= b + 1e-12:
                    self._counts[key][b] += 1
                    break
            else:  # +Inf
                self._counts[key][float("inf")] += 1

    def timer(self, labels: Optional[Dict[str, str]] = None) -> Callable[..., None]:
        start = time.perf_counter()

        def _stop(extra: Optional[Dict[str, str]] = None) -> None:
            merged = dict(labels or {})
            merged.update(extra or {})
            self.observe(time.perf_counter() - start, labels=merged)

        return _stop

    def count(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._obs.get(_key(labels), 0.0)

    def clear(self) -> None:
        with self._lock:
            self._counts.clear()
            self._sum.clear()
            self._obs.clear()

    def render(self) -> Iterable[str]:
        if self.help:
            yield f"# HELP {self.name} {self.help}\n# TYPE {self.name} histogram\n"
        with self._lock:
            all_keys = sorted(set(self._obs.keys()))
            snapshot = {k: dict(self._counts.get(k, {})) for k in all_keys}
            sums = dict(self._sum)
            obs = dict(self._obs)
        for key in all_keys:
            counts = snapshot[key]
            label_str = _label_str(key)
            running = 0.0
            # cumulative buckets
            for b in self._buckets + [float("inf")]:
                running += counts.get(b, 0.0)
                le = "+Inf" if b == float("inf") else f"{b:.2f}"
                if label_str:
                    yield f'{self.name}_bucket{{{label_str},le="{le}"}} {running}\n'
                else:
                    yield f'{self.name}_bucket{{le="{le}"}} {running}\n'
            if label_str:
                yield f"{self.name}_sum{{{label_str}}} {sums.get(key, 0.0)}\n"
                yield f"{self.name}_count{{{label_str}}} {obs.get(key, 0.0)}\n"
            else:
                yield f"{self.name}_sum {sums.get(key, 0.0)}\n"
                yield f"{self.name}_count {obs.get(key, 0.0)}\n"


# ---------- Registry ----------

class MetricsRegistry:
    def __init__(self):
        self._items: List[object] = []

    def counter(self, name: str, help_: str = "") -> _Counter:
        c = _Counter(name, help_)
        self._items.append(c)
        return c

    def histogram(self, name: str, help_: str = "", buckets: Optional[Iterable[float]] = None) -> _Histogram:
        h = _Histogram(name, help_, buckets=buckets)
        self._items.append(h)
        return h

    def render_prometheus(self) -> str:
        out: List[str] = []
        for it in self._items:
            out.extend(it.render())
        return "".join(out)

    def reset(self) -> None:
        """Zero every metric in place (module-level handles stay valid). Used by tests."""
        for it in self._items:
            it.clear()


REGISTRY = MetricsRegistry()

# ---------- App metrics ----------

checkout_requests = REGISTRY.counter(
    "checkout_requests_total", "Checkout session requests by outcome"
)
checkout_line_items = REGISTRY.counter(
    "checkout_line_items_total", "Line items sent to the payment provider"
)
provider_duration = REGISTRY.histogram(
    "checkout_provider_duration_seconds", "Payment provider call duration in seconds"
)
