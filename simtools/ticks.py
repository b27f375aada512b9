"""
Sorted tick ledger.

Entries are kept in two parallel lists, ticks and deposit lists, sorted by
strictly ascending tick. Lookups are binary searches over the tick list.
"""

import bisect
from typing import NamedTuple, List, Iterator

from simtools.deposits import DepositRecord


class TickEntry(NamedTuple):
    """All deposits recorded at one tick."""
    tick: float
    deposits: List[DepositRecord]


class TickRange:
    """
    Inclusive tick range view over a TickLedger.

    Iterating starts a fresh walk from the first tick >= ``start`` every time,
    so the view can be iterated more than once.
    """

    def __init__(self, ledger, start, end):
        self._ledger = ledger
        self.start = start
        self.end = end

    def __iter__(self) -> Iterator[TickEntry]:
        ledger = self._ledger
        idx = ledger.locate(self.start)
        while idx < len(ledger._ticks):
            tick = ledger._ticks[idx]
            if tick > self.end:
                break
            yield TickEntry(tick, ledger._deposits[idx])
            idx += 1

    def __repr__(self):
        return f"TickRange({self.start!r}, {self.end!r})"


class TickLedger:
    """
    Ordered collection of (tick, deposits) entries.

    Parameters
    ----------
    tick_type : type, optional
        Callable normalizing tick keys on insertion and lookup, by default
        ``int``. Float ticks are compared exactly.
    """

    def __init__(self, tick_type=int):
        self.tick_type = tick_type
        self._ticks = []
        self._deposits = []

    def __len__(self):
        return len(self._ticks)

    def __iter__(self) -> Iterator[TickEntry]:
        for tick, deposits in zip(self._ticks, self._deposits):
            yield TickEntry(tick, deposits)

    def __repr__(self):
        return f"TickLedger({len(self)} ticks)"

    def ticks(self):
        """Return the stored ticks in ascending order."""
        return list(self._ticks)

    def locate(self, tick) -> int:
        """
        Index of the first entry with tick >= ``tick``.

        Returns ``len(self)`` when every stored tick is smaller.
        """
        return bisect.bisect_left(self._ticks, self.tick_type(tick))

    def find(self, tick):
        """Deposits stored at exactly ``tick``, or None."""
        tick = self.tick_type(tick)
        idx = bisect.bisect_left(self._ticks, tick)
        if idx < len(self._ticks) and self._ticks[idx] == tick:
            return self._deposits[idx]
        return None

    def find_or_insert(self, tick) -> List[DepositRecord]:
        """
        Deposits stored at ``tick``, inserting an empty entry if needed.

        The returned list is the ledger's own and may be mutated in place.
        """
        tick = self.tick_type(tick)
        idx = bisect.bisect_left(self._ticks, tick)
        if idx < len(self._ticks) and self._ticks[idx] == tick:
            return self._deposits[idx]
        deposits = []
        self._ticks.insert(idx, tick)
        self._deposits.insert(idx, deposits)
        return deposits

    def range(self, start, end) -> TickRange:
        """Entries with ``start <= tick <= end`` in ascending order."""
        return TickRange(self, self.tick_type(start), self.tick_type(end))

    def copy(self):
        """Copy of the ledger; records are immutable and shared."""
        other = TickLedger(self.tick_type)
        other._ticks = list(self._ticks)
        other._deposits = [list(deposits) for deposits in self._deposits]
        return other
