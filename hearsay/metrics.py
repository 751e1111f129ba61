"""Message counters for hearsay.

Counters are the only mutable state touched for every message, from
the dispatch loop and from any handler task or thread that sends, so
increments are lock-protected.
"""

import threading
from collections import defaultdict
from typing import Dict, Tuple


class Counter:
    """A monotonically increasing counter keyed by label values.

    Args:
        name: Metric name (e.g. "hearsay_messages_received_total").
        description: One-line help text.
        label_names: Names of the labels, in the order values are passed.
    """

    def __init__(self, name: str, description: str, label_names: Tuple[str, ...]):
        self.name = name
        self.description = description
        self.label_names = label_names
        self._values: Dict[Tuple[str, ...], int] = defaultdict(int)
        self._lock = threading.Lock()

    def inc(self, *label_values: str, amount: int = 1) -> None:
        if len(label_values) != len(self.label_names):
            raise ValueError(
                f"{self.name} expects labels {self.label_names}, got {len(label_values)} values"
            )
        with self._lock:
            self._values[tuple(label_values)] += amount

    def value(self, *label_values: str) -> int:
        with self._lock:
            return self._values.get(tuple(label_values), 0)

    def snapshot(self) -> Dict[Tuple[str, ...], int]:
        """Copy of all current label sets and their counts."""
        with self._lock:
            return dict(self._values)

    def reset(self) -> None:
        """Clear all counts (for testing)."""
        with self._lock:
            self._values.clear()


MESSAGES_RX = Counter(
    "hearsay_messages_received_total",
    "Number of messages received from adapters.",
    ("adapter", "channel", "user"),
)

MESSAGES_TX = Counter(
    "hearsay_messages_sent_total",
    "Number of messages sent through response writers.",
    ("adapter", "channel", "user"),
)
