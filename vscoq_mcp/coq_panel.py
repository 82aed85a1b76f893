"""Read-only text panels (proof view, query results)."""

import asyncio


class Panel:
    """A list of display lines. Writers replace or append; readers poll or wait.

    ``revision`` increases on every write so a reader can tell whether a
    notification arrived since it last looked.
    """

    def __init__(self, name: str):
        self.name = name
        self._lines: list[str] = []
        self.revision = 0
        self._changed = asyncio.Event()

    def __repr__(self):
        return f"Panel({self.name!r}, {len(self._lines)} lines)"

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    @property
    def text(self) -> str:
        return "\n".join(self._lines)

    def replace(self, lines: list[str]):
        self._lines = list(lines)
        self._bump()

    def append(self, lines: list[str]):
        self._lines.extend(lines)
        self._bump()

    def clear(self):
        self.replace([])

    def _bump(self):
        self.revision += 1
        # Wake current waiters; later waiters get a fresh event.
        self._changed.set()
        self._changed = asyncio.Event()

    async def wait_changed(self, since: int, timeout: float) -> bool:
        """Wait until revision > since. Returns False on timeout."""
        if self.revision > since:
            return True
        try:
            await asyncio.wait_for(self._changed.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True
