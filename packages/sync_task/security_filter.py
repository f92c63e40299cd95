from __future__ import annotations

from decimal import Decimal
from typing import Awaitable, Callable, Iterable, Sequence

from packages.common.types import Instrument


async def select_working_set(
    selected: Sequence[Instrument],
    load_catalog: Callable[[], Awaitable[list[Instrument]]],
) -> list[Instrument]:
    """The "ALL" marker swaps the host selection for the source's own catalog."""
    if any(i.is_all_marker for i in selected):
        return list(await load_catalog())
    return list(selected)


def drop_zero_price_step(instruments: Iterable[Instrument]) -> tuple[list[Instrument], list[Instrument]]:
    kept: list[Instrument] = []
    removed: list[Instrument] = []
    for i in instruments:
        # The marker is a placeholder, not a priced security.
        if i.is_all_marker or Decimal(i.price_step) != 0:
            kept.append(i)
        else:
            removed.append(i)
    return kept, removed
