# Copyright (c) Syntropy Systems
"""Online summary statistics with a sparse log-bucketed histogram."""
from __future__ import annotations

import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import TextIO

# Relative width of a histogram bucket: [g**i, g**(i + 1))
BUCKET_GROWTH = 1.02
_LOG_GROWTH = math.log(BUCKET_GROWTH)

# Magnitudes below this land in the zero bucket
ZERO_THRESHOLD = 1e-9

REPORT_PERCENTILES = (0.5, 0.9, 0.99)
HISTOGRAM_BAR_WIDTH = 40


def _bucket_index(magnitude: float) -> int:
    return math.floor(math.log(magnitude) / _LOG_GROWTH)


def _bucket_midpoint(index: int) -> float:
    return BUCKET_GROWTH ** (index + 0.5)


class Summary:
    """Constant-memory accumulator for a stream of samples.

    Tracks count, mean, standard deviation, min and max exactly. Percentiles
    come from a sparse histogram whose buckets grow geometrically, so memory
    is bounded by the number of distinct buckets touched rather than the
    number of samples.

    NaN and infinite samples are rejected: they are tallied in ``rejected``
    and otherwise ignored. Zero and negative samples are accepted.
    """

    count: int
    rejected: int
    _m2: float
    _mean: float
    _min: float
    _max: float
    _positive: dict[int, int]
    _negative: dict[int, int]
    _positive_rows: dict[int, int]
    _negative_rows: dict[int, int]
    _zero: int

    def __init__(self) -> None:
        self.count = 0
        self.rejected = 0
        self._m2 = 0.0
        self._mean = 0.0
        self._min = math.inf
        self._max = -math.inf
        self._positive = {}
        self._negative = {}
        self._positive_rows = {}
        self._negative_rows = {}
        self._zero = 0

    def add(self, x: float) -> None:
        """Incorporate one sample."""
        x = float(x)
        if not math.isfinite(x):
            self.rejected += 1
            return

        self.count += 1
        # Welford update for the variance
        delta = x - self._mean
        self._mean += delta / self.count
        self._m2 += delta * (x - self._mean)

        self._min = min(self._min, x)
        self._max = max(self._max, x)

        magnitude = abs(x)
        if magnitude < ZERO_THRESHOLD:
            self._zero += 1
            return
        if x > 0:
            buckets, rows = self._positive, self._positive_rows
        else:
            buckets, rows = self._negative, self._negative_rows
        index = _bucket_index(magnitude)
        buckets[index] = buckets.get(index, 0) + 1
        # Row of the sample itself, not of its fine bucket
        row = math.floor(math.log2(magnitude))
        rows[row] = rows.get(row, 0) + 1

    @property
    def mean(self) -> float:
        """Arithmetic mean, 0.0 with no samples."""
        return self._mean

    @property
    def min(self) -> float:
        """Smallest sample, 0.0 with no samples."""
        return self._min if self.count else 0.0

    @property
    def max(self) -> float:
        """Largest sample, 0.0 with no samples."""
        return self._max if self.count else 0.0

    @property
    def stddev(self) -> float:
        """Population standard deviation."""
        if self.count < 2:
            return 0.0
        return math.sqrt(self._m2 / self.count)

    @property
    def bucket_count(self) -> int:
        """Number of histogram buckets in use."""
        return len(self._positive) + len(self._negative) + (1 if self._zero else 0)

    def _ordered_buckets(self) -> list[tuple[float, int]]:
        """Return (representative value, count) pairs in ascending order."""
        ordered: list[tuple[float, int]] = [
            (-_bucket_midpoint(i), self._negative[i])
            for i in sorted(self._negative, reverse=True)
        ]
        if self._zero:
            ordered.append((0.0, self._zero))
        ordered.extend(
            (_bucket_midpoint(i), self._positive[i]) for i in sorted(self._positive)
        )
        return ordered

    def percentile(self, q: float) -> float:
        """Estimate the q-quantile (q in [0, 1]).

        The estimate is the geometric midpoint of the bucket holding the
        target rank, clamped to the observed min and max.
        """
        if not 0.0 <= q <= 1.0:
            msg = f"Percentile must be within [0, 1], got {q}"
            raise ValueError(msg)
        if self.count == 0:
            return 0.0

        target = max(1, math.ceil(q * self.count))
        seen = 0
        value = self._max
        for value, n in self._ordered_buckets():
            seen += n
            if seen >= target:
                break
        return min(max(value, self._min), self._max)

    def histogram(self) -> list[tuple[float, float, int]]:
        """Coarse histogram as (low, high, count) rows.

        Row r counts samples whose magnitude lies in [2**r, 2**(r + 1)).
        The zero bucket is reported as the row (0.0, 0.0, n).
        """
        negative = self._negative_rows
        positive = self._positive_rows
        rows: list[tuple[float, float, int]] = [
            (-(2.0 ** (r + 1)), -(2.0**r), negative[r])
            for r in sorted(negative, reverse=True)
        ]
        if self._zero:
            rows.append((0.0, 0.0, self._zero))
        rows.extend((2.0**r, 2.0 ** (r + 1), positive[r]) for r in sorted(positive))
        return rows

    def render(self) -> str:
        """Render a fixed-format text report. Does not mutate state."""
        lines = [f"count: {self.count}"]
        if self.rejected:
            lines.append(f"rejected: {self.rejected}")
        if self.count == 0:
            lines.append("(no samples)")
            return "\n".join(lines) + "\n"

        lines.extend(
            [
                f"mean: {self.mean:.3f}",
                f"stddev: {self.stddev:.3f}",
                f"min: {self.min:.3f}",
                f"max: {self.max:.3f}",
            ]
        )
        lines.extend(
            f"p{q * 100:g}: {self.percentile(q):.3f}" for q in REPORT_PERCENTILES
        )

        rows = self.histogram()
        peak = max(n for _, _, n in rows)
        lines.append("histogram:")
        for low, high, n in rows:
            bar = "#" * max(1, round(n / peak * HISTOGRAM_BAR_WIDTH))
            label = "0" if low == high == 0.0 else f"[{low:g}, {high:g})"
            lines.append(f"  {label:>24} {n:>8} {bar}")
        return "\n".join(lines) + "\n"

    def write(self, stream: TextIO) -> None:
        """Write the rendered report to a text stream."""
        _ = stream.write(self.render())

    def __repr__(self) -> str:
        return f"Summary(count={self.count}, mean={self.mean:.3f}, min={self.min:.3f}, max={self.max:.3f})"
