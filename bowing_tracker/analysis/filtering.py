"""Recursive smoothing for noisy per-frame keypoint coordinates."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple


class ScalarKalmanFilter:
    """One-dimensional random-walk Kalman filter.

    With `initial_estimate=None` the first measurement seeds the state, so the
    output does not ramp up from zero on the first frames (which would read as
    false bow motion).
    """

    def __init__(
        self,
        process_noise: float = 0.1,
        measurement_noise: float = 0.5,
        initial_estimate: Optional[float] = None,
        initial_uncertainty: float = 1.0,
    ) -> None:
        if process_noise <= 0.0:
            raise ValueError(f"process_noise must be positive; got {process_noise!r}.")
        if measurement_noise <= 0.0:
            raise ValueError(f"measurement_noise must be positive; got {measurement_noise!r}.")
        if initial_uncertainty < 0.0:
            raise ValueError(f"initial_uncertainty cannot be negative; got {initial_uncertainty!r}.")
        self.process_noise = float(process_noise)
        self.measurement_noise = float(measurement_noise)
        self._initial_estimate = None if initial_estimate is None else float(initial_estimate)
        self._initial_uncertainty = float(initial_uncertainty)
        self._x: Optional[float] = self._initial_estimate
        self._p = self._initial_uncertainty

    @property
    def estimate(self) -> Optional[float]:
        return self._x

    @property
    def uncertainty(self) -> float:
        return self._p

    def filter(self, measurement: float) -> float:
        z = float(measurement)
        if self._x is None:
            self._x = z
            return z
        self._p += self.process_noise
        gain = self._p / (self._p + self.measurement_noise)
        self._x += gain * (z - self._x)
        self._p = (1.0 - gain) * self._p
        return self._x

    def reset(self) -> None:
        self._x = self._initial_estimate
        self._p = self._initial_uncertainty


class AxisFilterBank:
    """Independent `ScalarKalmanFilter` per coordinate axis."""

    def __init__(self, n_axes: int = 2, **filter_kwargs: float) -> None:
        if n_axes < 1:
            raise ValueError("n_axes must be at least 1.")
        self._filters = [ScalarKalmanFilter(**filter_kwargs) for _ in range(n_axes)]

    def __len__(self) -> int:
        return len(self._filters)

    def filter(self, values: Sequence[float]) -> Tuple[float, ...]:
        if len(values) != len(self._filters):
            raise ValueError(f"Expected {len(self._filters)} values; got {len(values)}.")
        return tuple(f.filter(v) for f, v in zip(self._filters, values))

    def reset(self) -> None:
        for f in self._filters:
            f.reset()


__all__ = ["ScalarKalmanFilter", "AxisFilterBank"]
