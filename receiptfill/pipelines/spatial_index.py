"""
Row-bucket index over normalized fragments.

Text printed on the same line of a receipt rarely comes back from OCR with
exactly the same vertical position. Bucketing vertical centers into coarse
bands and looking a couple of bands up/down gives cheap "same row" lookups
that tolerate that jitter.
"""

import math
from collections import defaultdict
from typing import Dict, List, Sequence

from receiptfill.schemas.receipt import NormalizedFragment


def row_bucket(mid_y: float, resolution: int) -> int:
    """Map a vertical center in [0, 1] to a band in [0, resolution - 1]."""
    bucket = int(math.floor(mid_y * resolution))
    return max(0, min(resolution - 1, bucket))


class SpatialIndex:
    """
    Mapping row bucket -> fragment indices, built once per receipt.

    Indices refer to positions in the normalized (reading-ordered) list.
    The index is read-only once built.
    """

    def __init__(self, fragments: Sequence[NormalizedFragment], resolution: int = 100, band: int = 2):
        self.resolution = resolution
        self.band = band
        self._bucket_of: List[int] = []
        self._rows: Dict[int, List[int]] = defaultdict(list)

        for idx, frag in enumerate(fragments):
            bucket = row_bucket(frag.box.mid_y, resolution)
            self._bucket_of.append(bucket)
            self._rows[bucket].append(idx)

    def __len__(self) -> int:
        return len(self._bucket_of)

    def bucket_of(self, index: int) -> int:
        return self._bucket_of[index]

    def row(self, bucket: int) -> List[int]:
        return list(self._rows.get(bucket, ()))

    def neighbors(self, index: int) -> List[int]:
        """
        Fragments on the same or a nearby row (within +/- band buckets).

        Returns indices in ascending order, excluding `index` itself.
        """
        center = self._bucket_of[index]
        found: List[int] = []
        for bucket in range(center - self.band, center + self.band + 1):
            for idx in self._rows.get(bucket, ()):
                if idx != index:
                    found.append(idx)
        found.sort()
        return found
