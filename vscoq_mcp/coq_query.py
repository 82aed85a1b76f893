"""Single-flight filtering of query results."""

SEARCH = "search"
QUERY = "query"


class QueryTracker:
    """Hands out query ids and tells stale results apart from current ones.

    One counter is shared by every channel; only the order of ids matters.
    A result is stale when a newer query was issued on its channel. Streaming
    channels (search) see many results with the same id, all accepted.
    """

    def __init__(self):
        self._counter = 0
        self._latest: dict[str, int] = {}

    def issue(self, channel: str) -> int:
        self._counter += 1
        self._latest[channel] = self._counter
        return self._counter

    def latest(self, channel: str) -> int:
        """Most recent id issued on ``channel`` (0 if none)."""
        return self._latest.get(channel, 0)

    def accept(self, channel: str, query_id: int) -> bool:
        return query_id >= self.latest(channel)
