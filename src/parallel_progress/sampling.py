# parallel_progress/sampling.py
"""Adaptive sampling policy for progress reports."""

from __future__ import annotations

__all__ = ["compute_step_size", "REPORTS_PER_UNIT", "MIN_ITERATIONS_FOR_SAMPLING"]

REPORTS_PER_UNIT = 100
MIN_ITERATIONS_FOR_SAMPLING = 200


def compute_step_size(total_iterations: int, denominator: int = 1) -> int:
    """
    Number of local iterations a worker accumulates between reports.

    Small loops report every iteration. Once each reporting unit owns more
    than 200 iterations, reports are thinned to roughly 100 per unit, so
    message volume stays flat no matter how large the loop gets.

    Args:
        total_iterations: Iterations in the whole loop
        denominator: 1 for a single global counter, or the worker count
            when every worker reports its own share

    Returns:
        Step size, always >= 1

    Examples:
        >>> compute_step_size(150)
        1
        >>> compute_step_size(1_000_000, 10)
        1000
    """
    if total_iterations < 1:
        raise ValueError(f"total_iterations must be positive, got {total_iterations}")
    if denominator < 1:
        raise ValueError(f"denominator must be positive, got {denominator}")

    if total_iterations / denominator > MIN_ITERATIONS_FOR_SAMPLING:
        return max(1, total_iterations // denominator // REPORTS_PER_UNIT)
    return 1
