"""Strength estimation."""


def estimate_one_rep_max(weight: float, reps: int) -> float:
    """Estimate 1RM using the Epley formula.

    A single rep needs no extrapolation. Callers filter out non-positive
    weights before estimating.
    """
    if reps == 1:
        return float(weight)
    return weight * (1 + reps / 30)
