"""Progress display for variant scans.

The bar counts variants visited and carries the number that passed the
MAF/MAC gate as a live variable, so filtering-heavy scans are visible while
they run.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable, Iterator
from typing import TypeVar

import progressbar

T = TypeVar("T")


class ScanProgress:
    """progressbar2 wrapper tracking visited and tested variants.

    Use as a context manager so the bar is finished on early exit or error.

    Example:
        >>> with ScanProgress(total=n_variants, desc="Scoring") as bar:
        ...     for j in range(n_variants):
        ...         bar.advance(tested=result is not None)
    """

    def __init__(self, total: int, desc: str = "", enabled: bool = True):
        self.total = total
        self.desc = desc
        self.enabled = enabled
        self.visited = 0
        self.tested = 0
        self._bar: progressbar.ProgressBar | None = None

    def __enter__(self) -> ScanProgress:
        if self.enabled:
            widgets = [
                f"{self.desc}: " if self.desc else "",
                progressbar.Counter(),
                f"/{self.total} ",
                progressbar.Percentage(),
                " ",
                progressbar.Bar(),
                " ",
                progressbar.Variable("tested", width=1),
                " ",
                progressbar.Timer(),
                " ",
                progressbar.ETA(),
            ]
            self._bar = progressbar.ProgressBar(
                max_value=self.total, widgets=widgets, fd=sys.stdout
            )
            self._bar.start()
        return self

    def advance(self, tested: bool) -> None:
        """Record one visited variant."""
        self.visited += 1
        if tested:
            self.tested += 1
        if self._bar is not None:
            self._bar.update(self.visited, tested=self.tested)

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._bar is not None:
            self._bar.finish()
            self._bar = None


def progress_iterator(
    iterable: Iterable[T], total: int, desc: str = "", enabled: bool = True
) -> Iterator[T]:
    """Wrap an iterable with a plain progress bar (no tested counter).

    Used for chunked reads, where only the chunk count is meaningful.

    Args:
        iterable: Items to wrap.
        total: Total number of items.
        desc: Optional description prefix.
        enabled: When False, items are passed through without a bar.

    Yields:
        Items from the wrapped iterable.
    """
    if not enabled:
        yield from iterable
        return

    widgets = [
        f"{desc}: " if desc else "",
        progressbar.Counter(),
        f"/{total} ",
        progressbar.Bar(),
        " ",
        progressbar.ETA(),
    ]
    bar = progressbar.ProgressBar(max_value=total, widgets=widgets, fd=sys.stdout)
    bar.start()
    try:
        for i, item in enumerate(iterable):
            yield item
            bar.update(i + 1)
    finally:
        bar.finish()
