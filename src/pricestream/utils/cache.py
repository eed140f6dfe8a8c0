from collections import OrderedDict

DEFAULT_CAPACITY = 10_000


class BoundedKeyCache:
    """Fixed-capacity LRU of `(alert_id, triggered_at)` dedup keys.

    Membership is checked by alert id; the oldest entry is evicted once
    `capacity` is reached.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: OrderedDict[str, int] = OrderedDict()

    def __contains__(self, alert_id: object) -> bool:
        return alert_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, alert_id: str, triggered_at: int) -> None:
        if alert_id in self._entries:
            self._entries.move_to_end(alert_id)
        self._entries[alert_id] = triggered_at

        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def discard(self, alert_id: str) -> None:
        self._entries.pop(alert_id, None)
