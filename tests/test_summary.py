# Copyright (c) Syntropy Systems
"""Tests for the summary statistics accumulator."""

import io
import math

import pytest

from lagprobe.summary import Summary


class TestSummaryBasics:
    """Tests for exact statistics."""

    def test_empty_summary_renders(self) -> None:
        """Test that rendering with no samples gives a well-defined report."""
        summary = Summary()

        text = summary.render()

        assert "count: 0" in text
        assert "(no samples)" in text
        assert summary.mean == 0.0
        assert summary.min == 0.0
        assert summary.max == 0.0
        assert summary.percentile(0.5) == 0.0

    def test_count_min_max_mean(self) -> None:
        """Test exact count, min, max and mean."""
        samples = [3.0, 1.0, 4.0, 1.0, 5.0, 9.0, 2.0, 6.0]
        summary = Summary()
        for x in samples:
            summary.add(x)

        _ = summary.render()

        assert summary.count == len(samples)
        assert summary.min == 1.0
        assert summary.max == 9.0
        assert summary.mean == pytest.approx(sum(samples) / len(samples))

    def test_stddev(self) -> None:
        """Test population standard deviation."""
        summary = Summary()
        for x in [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]:
            summary.add(x)

        assert summary.stddev == pytest.approx(2.0)

    def test_mean_and_stddev_large_offset(self) -> None:
        """Test mean and stddev of samples far from zero."""
        summary = Summary()
        for x in [1e9 + 1, 1e9 + 2, 1e9 + 3]:
            summary.add(x)

        assert summary.mean == pytest.approx(1e9 + 2)
        assert summary.stddev == pytest.approx(math.sqrt(2 / 3), rel=1e-6)

    def test_render_does_not_mutate(self) -> None:
        """Test that render can be called repeatedly with identical output."""
        summary = Summary()
        for x in range(1, 50):
            summary.add(float(x))

        first = summary.render()
        second = summary.render()

        assert first == second
        assert summary.count == 49

    def test_write_to_stream(self) -> None:
        """Test writing the report to a text stream."""
        summary = Summary()
        summary.add(1.0)
        stream = io.StringIO()

        summary.write(stream)

        assert stream.getvalue() == summary.render()


class TestSummaryEdgeValues:
    """Tests for NaN, infinities, zero and negative samples."""

    def test_nan_and_infinity_rejected(self) -> None:
        """Test that non-finite samples are counted as rejected and ignored."""
        summary = Summary()
        summary.add(1.0)
        summary.add(math.nan)
        summary.add(math.inf)
        summary.add(-math.inf)

        assert summary.count == 1
        assert summary.rejected == 3
        assert summary.max == 1.0
        assert "rejected: 3" in summary.render()

    def test_zero_and_negative_accepted(self) -> None:
        """Test that zero and negative samples are accepted."""
        summary = Summary()
        for x in [-4.0, 0.0, 2.0]:
            summary.add(x)

        assert summary.count == 3
        assert summary.min == -4.0
        assert summary.max == 2.0
        assert summary.mean == pytest.approx(-2.0 / 3)
        assert summary.percentile(0.0) == pytest.approx(-4.0, rel=0.02)
        assert summary.percentile(0.5) == 0.0
        assert summary.percentile(1.0) == pytest.approx(2.0, rel=0.02)

    def test_all_zero_samples(self) -> None:
        """Test a stream of zero latencies."""
        summary = Summary()
        for _ in range(5):
            summary.add(0.0)

        text = summary.render()

        assert summary.percentile(0.99) == 0.0
        assert "mean: 0.000" in text


class TestSummaryPercentiles:
    """Tests for approximate percentiles and the histogram."""

    def test_constant_samples_exact(self) -> None:
        """Test that percentiles of a constant stream are exact."""
        summary = Summary()
        for _ in range(10):
            summary.add(1.0)

        assert summary.percentile(0.5) == 1.0
        assert summary.percentile(0.99) == 1.0

    def test_percentiles_within_bucket_error(self) -> None:
        """Test percentile estimates stay within the bucket growth factor."""
        summary = Summary()
        for x in range(1, 1001):
            summary.add(float(x))

        assert summary.percentile(0.5) == pytest.approx(500, rel=0.02)
        assert summary.percentile(0.9) == pytest.approx(900, rel=0.02)
        assert summary.percentile(0.99) == pytest.approx(990, rel=0.02)
        assert summary.percentile(1.0) <= 1000

    def test_percentile_range_checked(self) -> None:
        """Test that percentiles outside [0, 1] raise ValueError."""
        summary = Summary()
        summary.add(1.0)

        with pytest.raises(ValueError, match="Percentile"):
            _ = summary.percentile(1.5)

    def test_memory_bounded_by_buckets(self) -> None:
        """Test that bucket usage does not grow with the number of samples."""
        summary = Summary()
        for i in range(20000):
            summary.add(float(i % 400 + 1))

        assert summary.count == 20000
        # 400 distinct values spread over at most log(400)/log(1.02) buckets
        assert summary.bucket_count <= 305

    def test_histogram_powers_of_two(self) -> None:
        """Test that exact powers of two land in the row they open."""
        summary = Summary()
        for x in [1.0, 2.0, 2.0, 4.0]:
            summary.add(x)

        assert summary.histogram() == [(1.0, 2.0, 1), (2.0, 4.0, 2), (4.0, 8.0, 1)]
        text = summary.render()
        assert "[1, 2)        1" in text
        assert "[2, 4)        2" in text

    def test_histogram_integer_retries(self) -> None:
        """Test the rows for small integer attempt counts."""
        summary = Summary()
        for x in range(1, 17):
            summary.add(float(x))

        assert summary.histogram() == [
            (1.0, 2.0, 1),
            (2.0, 4.0, 2),
            (4.0, 8.0, 4),
            (8.0, 16.0, 8),
            (16.0, 32.0, 1),
        ]

    def test_histogram_negative_rows(self) -> None:
        """Test that negative samples are rowed by magnitude."""
        summary = Summary()
        for x in [-2.0, -3.0, -1.0, 0.0]:
            summary.add(x)

        assert summary.histogram() == [
            (-4.0, -2.0, 2),
            (-2.0, -1.0, 1),
            (0.0, 0.0, 1),
        ]

    def test_histogram_counts_sum_to_count(self) -> None:
        """Test that histogram rows account for every sample."""
        summary = Summary()
        for x in [0.0, 0.5, 1.0, 3.0, 3.5, 100.0, -2.0]:
            summary.add(x)

        rows = summary.histogram()

        assert sum(n for _, _, n in rows) == summary.count
        lows = [low for low, _, _ in rows]
        assert lows == sorted(lows)

    def test_render_layout(self) -> None:
        """Test the fixed report fields."""
        summary = Summary()
        for x in [1.0, 2.0, 3.0]:
            summary.add(x)

        lines = summary.render().splitlines()

        assert lines[:8] == [
            "count: 3",
            "mean: 2.000",
            "stddev: 0.816",
            "min: 1.000",
            "max: 3.000",
            lines[5],
            lines[6],
            lines[7],
        ]
        assert lines[5].startswith("p50: ")
        assert lines[6].startswith("p90: ")
        assert lines[7].startswith("p99: ")
        assert lines[8] == "histogram:"
