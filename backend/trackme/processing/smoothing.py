"""Scalar Kalman filter used to smooth one channel of GPS data."""

import math
from typing import Optional, Tuple

from trackme.core.constants import DEFAULT_MEASUREMENT_NOISE, DEFAULT_PROCESS_NOISE


class KalmanFilter:
    """
    One-dimensional Kalman filter with a constant-value process model.

    Usage:
        f = KalmanFilter()
        smoothed = f.process(measurement=52.1, measurement_noise=4.0)

    The first measurement seeds the state (mean = measurement, variance =
    measurement noise) and is returned unchanged. Each later call predicts
    (variance += process_noise) and then blends the measurement in with the
    Kalman gain.
    """

    def __init__(
        self,
        state: Optional[Tuple[float, float]] = None,
        process_noise: float = DEFAULT_PROCESS_NOISE,
    ):
        """
        Args:
            state: Initial (mean, variance). If None, the first processed
                value sets the state.
            process_noise: Variance added per step; how far the true value is
                expected to drift between measurements.
        """
        self._state = state
        self.process_noise = process_noise

    @property
    def has_state(self) -> bool:
        return self._state is not None

    @property
    def estimate(self) -> Optional[float]:
        return self._state[0] if self._state is not None else None

    @property
    def variance(self) -> Optional[float]:
        return self._state[1] if self._state is not None else None

    def reset(self) -> None:
        self._state = None

    def process(self, measurement: float, measurement_noise: float) -> float:
        """Fold `measurement` (with variance `measurement_noise`) into the estimate."""
        if not (measurement_noise >= 0):  # negative or NaN
            measurement_noise = DEFAULT_MEASUREMENT_NOISE

        if self._state is None:
            self._state = (measurement, measurement_noise)
            return measurement

        mean, variance = self._state
        predicted_variance = variance + self.process_noise

        gain = self._gain(predicted_variance, measurement_noise)
        if gain == 1.0:
            new_mean = measurement  # exact, avoids mean + (m - mean) rounding
        else:
            new_mean = mean + gain * (measurement - mean)
        new_variance = (1.0 - gain) * predicted_variance if gain < 1.0 else 0.0

        self._state = (new_mean, new_variance)
        return new_mean

    @staticmethod
    def _gain(predicted_variance: float, measurement_noise: float) -> float:
        if measurement_noise == 0.0 or math.isinf(predicted_variance):
            return 1.0
        if math.isinf(measurement_noise):
            return 0.0
        return predicted_variance / (predicted_variance + measurement_noise)
