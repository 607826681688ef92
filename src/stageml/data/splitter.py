"""
Deterministic train/test partitioning.
"""

from __future__ import annotations

import logging
import math
from typing import List, NamedTuple, Optional

from stageml.data.dataframe import Dataframe
from stageml.errors import InvalidFractionError
from stageml.rng import RandomContext

logger = logging.getLogger(__name__)


class Split(NamedTuple):
    """Disjoint train and test Dataframes produced by one split."""

    train: Dataframe
    test: Dataframe


def shuffled_ids(record_ids: List[int], seed: int | RandomContext | None) -> List[int]:
    """
    Fisher-Yates shuffle of ``record_ids`` driven by a seeded generator.

    The ids are sorted first, so the result depends only on the id set and
    the seed, never on insertion order.
    """
    context = seed if isinstance(seed, RandomContext) else RandomContext(seed)
    rng = context.generator()
    ids = sorted(record_ids)
    for i in range(len(ids) - 1, 0, -1):
        j = int(rng.integers(0, i + 1))
        ids[i], ids[j] = ids[j], ids[i]
    return ids


def split(
    dataframe: Dataframe,
    train_fraction: float,
    seed: int | RandomContext | None = None,
) -> Split:
    """
    Partition a Dataframe into train and test sets.

    Identical ``(dataframe, train_fraction, seed)`` always yield identical
    partitions. The train set gets ``floor(n * train_fraction)`` records.
    Both outputs are deep copies that keep the original record ids.

    Args:
        dataframe: Data to partition.
        train_fraction: Share of records for training, strictly inside (0, 1).
        seed: Integer seed or RandomContext; None falls back to the
            Dataframe configuration's seed.

    Raises:
        InvalidFractionError: If ``train_fraction`` is outside (0, 1).
    """
    if not isinstance(train_fraction, (int, float)) or not 0.0 < float(train_fraction) < 1.0:
        raise InvalidFractionError(f"train_fraction must be in (0, 1), got {train_fraction!r}")

    if seed is None and dataframe.configuration is not None:
        seed = dataframe.configuration.random_context()

    ids = shuffled_ids(dataframe.ids(), seed)
    n_train = int(math.floor(len(ids) * float(train_fraction)))
    train_ids, test_ids = ids[:n_train], ids[n_train:]

    logger.info(f"Split {len(ids)} records into {len(train_ids)} train / {len(test_ids)} test")
    return Split(
        train=dataframe.subset(sorted(train_ids)),
        test=dataframe.subset(sorted(test_ids)),
    )


class Splitter:
    """
    Splitter bound to a fixed fraction and seed.

    Example:
        >>> splitter = Splitter(train_fraction=0.8, seed=1)
        >>> train, test = splitter.split(df)
    """

    def __init__(self, train_fraction: float, seed: int | RandomContext | None = None):
        if not isinstance(train_fraction, (int, float)) or not 0.0 < float(train_fraction) < 1.0:
            raise InvalidFractionError(f"train_fraction must be in (0, 1), got {train_fraction!r}")
        self.train_fraction = float(train_fraction)
        self.seed = seed

    def split(self, dataframe: Dataframe, seed: Optional[int | RandomContext] = None) -> Split:
        return split(dataframe, self.train_fraction, self.seed if seed is None else seed)

    def __repr__(self) -> str:
        return f"Splitter(train_fraction={self.train_fraction}, seed={self.seed!r})"
