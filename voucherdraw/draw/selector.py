from __future__ import annotations

import math
from collections.abc import Callable, Sequence

from voucherdraw.draw.types import CatalogEntry

RandomSource = Callable[[], float]


def _clamp_unit(value: float) -> float:
    if not math.isfinite(value) or value < 0.0:
        return 0.0
    if value >= 1.0:
        return math.nextafter(1.0, 0.0)
    return value


def select_reward(
    catalog: Sequence[CatalogEntry],
    random_source: RandomSource,
) -> CatalogEntry | None:
    """Pick a candidate reward with probability proportional to its weight.

    Entries are walked in the order given; the caller supplies a stable
    catalog order. An empty catalog yields ``None``. When every weight is
    zero the pick is uniform, so a non-empty catalog always yields an entry.
    ``random_source`` must return a float in ``[0, 1)``; it is called once.
    """
    if not catalog:
        return None

    weights = [
        entry.weight if math.isfinite(entry.weight) and entry.weight > 0 else 0.0
        for entry in catalog
    ]
    total = math.fsum(weights)
    draw = _clamp_unit(random_source())

    if total <= 0.0:
        index = min(int(draw * len(catalog)), len(catalog) - 1)
        return catalog[index]

    threshold = draw * total
    cumulative = 0.0
    last_weighted = catalog[-1]
    for entry, weight in zip(catalog, weights):
        if weight <= 0.0:
            continue
        cumulative += weight
        last_weighted = entry
        if cumulative > threshold:
            return entry

    # float accumulation can stop short of the threshold
    return last_weighted
