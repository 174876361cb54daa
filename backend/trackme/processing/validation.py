"""
Fix validation and adaptive sampling.

Decides, for each raw fix, whether it is trustworthy enough to record and how
long the sensor should wait before delivering the next one. Accepted fixes
are smoothed channel by channel with independent scalar Kalman filters.

Rejections are ordinary results, never exceptions:

    validator = LocationValidator(ValidationConfig.default())
    result = validator.validate(fix)
    if result.accepted:
        repo.save_location(result.fix, session)
    sensor.set_interval(result.next_interval)
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator

from trackme.core.constants import ACCEPTANCE_WINDOW, DEFAULT_PROCESS_NOISE, METERS_PER_DEGREE
from trackme.core.geo import haversine_m, wrap_longitude
from trackme.core.time_utils import ensure_utc
from trackme.processing.smoothing import KalmanFilter
from trackme.schemas.location import RawFix


logger = logging.getLogger(__name__)


class ValidationConfig(BaseModel):
    """
    Thresholds for fix acceptance and sampling cadence.

    Attributes:
        max_horizontal_accuracy: Worst accepted horizontal accuracy (m)
        min_time_interval: Fixes closer in time than this (s) ...
        min_distance_interval: ... and closer in space than this (m) are
            redundant. None disables the distance test (time alone decides).
        min_sampling_interval: Fastest requested sampling interval (s)
        max_sampling_interval: Slowest requested sampling interval (s)
        process_noise: Kalman process noise, degrees^2 per step
        max_reasonable_speed: Implied speed above this (m/s) is a glitch
        max_distance_jump: Jump above this (m) inside min_time_interval is a glitch
        adaptive_sampling: Adjust the interval from activity; otherwise pin
            it to min_sampling_interval
        speed_for_min_interval: Speed (m/s) at which the speed term saturates
        max_consecutive_rejects: Plausibility or out-of-order rejects
            before re-anchoring
        hysteresis: Fraction of the interval range the target must move
            before the interval changes
    """

    max_horizontal_accuracy: float = 50.0
    min_time_interval: float = 5.0
    min_distance_interval: Optional[float] = 200.0
    min_sampling_interval: float = 5.0
    max_sampling_interval: float = 60.0
    process_noise: float = DEFAULT_PROCESS_NOISE

    max_reasonable_speed: float = 69.0      # ~250 km/h
    max_distance_jump: float = 1000.0
    adaptive_sampling: bool = True
    speed_for_min_interval: float = 15.0
    max_consecutive_rejects: int = 5
    hysteresis: float = 0.1

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.min_sampling_interval <= 0:
            raise ValueError("min_sampling_interval must be > 0")
        if self.max_sampling_interval < self.min_sampling_interval:
            raise ValueError("max_sampling_interval must be >= min_sampling_interval")
        if not 0.0 <= self.hysteresis < 1.0:
            raise ValueError("hysteresis must be in [0, 1)")
        return self

    # Presets

    @classmethod
    def default(cls) -> "ValidationConfig":
        """Balanced: long trips by car, adaptive."""
        return DEFAULT

    @classmethod
    def high_precision(cls) -> "ValidationConfig":
        """Walking/hiking: tight accuracy, dense points, fixed short interval."""
        return HIGH_PRECISION

    @classmethod
    def efficient(cls) -> "ValidationConfig":
        """Road trips and flights: loose thresholds, long intervals."""
        return EFFICIENT

    @classmethod
    def permissive(cls) -> "ValidationConfig":
        """Minimal rejection; time-based filtering only."""
        return PERMISSIVE


DEFAULT = ValidationConfig()

HIGH_PRECISION = ValidationConfig(
    max_horizontal_accuracy=20.0,
    min_time_interval=2.0,
    min_distance_interval=10.0,
    min_sampling_interval=1.0,
    max_sampling_interval=10.0,
    max_reasonable_speed=30.0,   # ~108 km/h
    max_distance_jump=500.0,
    adaptive_sampling=False,
)

EFFICIENT = ValidationConfig(
    max_horizontal_accuracy=65.0,
    min_time_interval=10.0,
    min_distance_interval=500.0,
    min_sampling_interval=10.0,
    max_sampling_interval=120.0,
    max_reasonable_speed=150.0,  # ~540 km/h, flights
    max_distance_jump=5000.0,
    adaptive_sampling=True,
    speed_for_min_interval=60.0,
)

PERMISSIVE = ValidationConfig(
    max_horizontal_accuracy=100.0,
    min_time_interval=1.0,
    min_distance_interval=None,
    min_sampling_interval=1.0,
    max_sampling_interval=30.0,
    max_reasonable_speed=150.0,
    max_distance_jump=5000.0,
    adaptive_sampling=False,
)


class TrackingMode(str, Enum):
    """User-facing tracking modes."""

    detailed = "detailed"
    balanced = "balanced"
    efficient = "efficient"

    @property
    def validation_config(self) -> ValidationConfig:
        return {
            TrackingMode.detailed: HIGH_PRECISION,
            TrackingMode.balanced: DEFAULT,
            TrackingMode.efficient: EFFICIENT,
        }[self]


class EngineState(str, Enum):
    WAITING_FOR_FIRST_FIX = "waiting_for_first_fix"
    TRACKING = "tracking"


class RejectionReason(str, Enum):
    INVALID_VALUE = "invalid_value"
    OUT_OF_RANGE = "out_of_range"
    INVALID_ACCURACY = "invalid_accuracy"
    POOR_ACCURACY = "poor_accuracy"
    OUT_OF_ORDER = "out_of_order"
    REDUNDANT = "redundant"
    IMPLAUSIBLE_SPEED = "implausible_speed"
    DISTANCE_JUMP = "distance_jump"


# Rejections that mean "this fix disagrees with the anchor", as opposed to
# "this fix is bad on its own". Only these count towards re-anchoring; a
# future-dated anchor (clock glitch) shows up as a run of OUT_OF_ORDER.
_PLAUSIBILITY_REASONS = frozenset(
    {
        RejectionReason.OUT_OF_ORDER,
        RejectionReason.IMPLAUSIBLE_SPEED,
        RejectionReason.DISTANCE_JUMP,
    }
)


@dataclass(frozen=True)
class ValidationResult:
    accepted: bool
    next_interval: float
    reason: Optional[RejectionReason] = None
    fix: Optional[RawFix] = None          # smoothed fix when accepted
    distance_m: Optional[float] = None    # from the last accepted fix
    elapsed_s: Optional[float] = None


CHANNELS = ("latitude", "longitude", "altitude", "speed")


class LocationValidator:
    """
    Accept/reject policy plus adaptive sampling over a stream of raw fixes.

    Must be fed sequentially from a single producer. `reset()` drops all
    working state (filters, anchor, counters) so tracking can resume fresh.
    """

    def __init__(self, config: Optional[ValidationConfig] = None, smoothing: bool = True):
        self.config = config or ValidationConfig.default()
        self.smoothing = smoothing
        self.filters: dict[str, KalmanFilter] = {}
        self.reset()

    # ------------------------------------------------------------------ state

    def reset(self) -> None:
        self.filters = {
            name: KalmanFilter(process_noise=self._process_noise(name))
            for name in CHANNELS
        }
        self.last_accepted: Optional[RawFix] = None
        self.current_interval: float = self.config.min_sampling_interval
        self.consecutive_rejects = 0
        self.accepted_count = 0
        self.rejected_count = 0
        self.rejections: dict[RejectionReason, int] = {r: 0 for r in RejectionReason}
        self._recent: deque[bool] = deque(maxlen=ACCEPTANCE_WINDOW)

    @property
    def state(self) -> EngineState:
        if self.last_accepted is None:
            return EngineState.WAITING_FOR_FIRST_FIX
        return EngineState.TRACKING

    @property
    def acceptance_rate(self) -> float:
        if not self._recent:
            return 1.0
        return sum(self._recent) / len(self._recent)

    def _process_noise(self, channel: str) -> float:
        # process noise is configured in degrees^2; metric channels need m^2
        if channel in ("latitude", "longitude"):
            return self.config.process_noise
        return self.config.process_noise * METERS_PER_DEGREE ** 2

    # ------------------------------------------------------------- decisions

    def validate(self, fix: RawFix) -> ValidationResult:
        reason, distance, elapsed = self._check(fix)

        if reason in _PLAUSIBILITY_REASONS:
            if self.consecutive_rejects + 1 > self.config.max_consecutive_rejects:
                logger.info(
                    "Re-anchoring after %d consecutive %s rejections",
                    self.consecutive_rejects, reason.value,
                )
                self.reset_anchor()
                reason = None

        if reason is not None:
            return self._reject(reason, distance, elapsed)

        smoothed = self._smooth(fix)
        self.last_accepted = smoothed
        self.consecutive_rejects = 0
        self.accepted_count += 1
        self._recent.append(True)
        next_interval = self._next_interval(smoothed.speed)
        logger.debug(
            "Accepted fix at %s (%.6f, %.6f), next interval %.1fs",
            smoothed.timestamp, smoothed.latitude, smoothed.longitude, next_interval,
        )
        return ValidationResult(
            accepted=True,
            next_interval=next_interval,
            fix=smoothed,
            distance_m=distance,
            elapsed_s=elapsed,
        )

    def reset_anchor(self) -> None:
        """Forget the last accepted fix and filter state, keep counters."""
        for f in self.filters.values():
            f.reset()
        self.last_accepted = None
        self.consecutive_rejects = 0

    def retract_last(self) -> None:
        """Undo the latest acceptance whose fix could not be stored."""
        if self.last_accepted is None:
            return
        self.accepted_count -= 1
        if self._recent:
            self._recent.pop()
        self.reset_anchor()

    def _reject(self, reason, distance, elapsed) -> ValidationResult:
        self.rejected_count += 1
        self.rejections[reason] += 1
        if reason in _PLAUSIBILITY_REASONS:
            self.consecutive_rejects += 1
        self._recent.append(False)
        last_speed = self.last_accepted.speed if self.last_accepted is not None else 0.0
        next_interval = self._next_interval(last_speed)
        logger.debug("Rejected fix: %s", reason.value)
        return ValidationResult(
            accepted=False,
            next_interval=next_interval,
            reason=reason,
            distance_m=distance,
            elapsed_s=elapsed,
        )

    def _check(self, fix: RawFix):
        """Return (reason or None, distance_m, elapsed_s)."""
        cfg = self.config
        numbers = (
            fix.latitude, fix.longitude, fix.altitude,
            fix.horizontal_accuracy, fix.speed, fix.course,
        )
        if not all(math.isfinite(v) for v in numbers):
            return RejectionReason.INVALID_VALUE, None, None
        if not (-90.0 <= fix.latitude <= 90.0 and -180.0 <= fix.longitude <= 180.0):
            return RejectionReason.OUT_OF_RANGE, None, None
        if fix.horizontal_accuracy < 0:
            return RejectionReason.INVALID_ACCURACY, None, None
        if fix.horizontal_accuracy > cfg.max_horizontal_accuracy:
            return RejectionReason.POOR_ACCURACY, None, None

        last = self.last_accepted
        if last is None:
            return None, None, None

        elapsed = (ensure_utc(fix.timestamp) - ensure_utc(last.timestamp)).total_seconds()
        if elapsed < 0:
            return RejectionReason.OUT_OF_ORDER, None, elapsed
        distance = haversine_m(last.latitude, last.longitude, fix.latitude, fix.longitude)

        if elapsed < cfg.min_time_interval and (
            cfg.min_distance_interval is None or distance < cfg.min_distance_interval
        ):
            return RejectionReason.REDUNDANT, distance, elapsed

        if elapsed > 0 and distance / elapsed > cfg.max_reasonable_speed:
            return RejectionReason.IMPLAUSIBLE_SPEED, distance, elapsed
        if distance > cfg.max_distance_jump and elapsed < cfg.min_time_interval:
            return RejectionReason.DISTANCE_JUMP, distance, elapsed

        return None, distance, elapsed

    # -------------------------------------------------------------- smoothing

    def _smooth(self, fix: RawFix) -> RawFix:
        speed = max(fix.speed, 0.0)
        course = max(fix.course, 0.0)
        if not self.smoothing:
            return fix.model_copy(update={"speed": speed, "course": course})

        acc = fix.horizontal_accuracy
        lat_var = (acc / METERS_PER_DEGREE) ** 2
        cos_lat = max(math.cos(math.radians(fix.latitude)), 1e-6)
        lon_var = (acc / (METERS_PER_DEGREE * cos_lat)) ** 2
        alt_acc = fix.vertical_accuracy if fix.vertical_accuracy >= 0 else acc
        alt_var = alt_acc ** 2

        lat = self.filters["latitude"].process(fix.latitude, lat_var)
        lon = self._smooth_longitude(fix.longitude, lon_var)
        alt = self.filters["altitude"].process(fix.altitude, alt_var)
        # an invalid (negative) speed reading carries no information
        if fix.speed >= 0:
            speed = max(self.filters["speed"].process(fix.speed, acc ** 2), 0.0)

        return fix.model_copy(
            update={
                "latitude": min(max(lat, -90.0), 90.0),
                "longitude": lon,
                "altitude": alt,
                "speed": speed,
                "course": course,
            }
        )

    def _smooth_longitude(self, lon: float, variance: float) -> float:
        f = self.filters["longitude"]
        if f.estimate is not None:
            # unwrap so 179.9 -> -179.9 is a 0.2 degree step, not 359.8
            delta = lon - f.estimate
            if delta > 180.0:
                lon -= 360.0
            elif delta < -180.0:
                lon += 360.0
        # the filter keeps working in unwrapped degrees; only the output wraps
        return wrap_longitude(f.process(lon, variance))

    # ------------------------------------------------------- adaptive sampling

    def _next_interval(self, speed: float) -> float:
        """
        Next requested interval (s) in [min_sampling_interval, max_sampling_interval].

        activity = half acceptance rate + half normalized speed; busy or fast
        pulls the interval to the minimum, idle or rejecting pushes it to the
        maximum. Small moves of the target are ignored (hysteresis).
        """
        cfg = self.config
        lo, hi = cfg.min_sampling_interval, cfg.max_sampling_interval
        if not cfg.adaptive_sampling or hi == lo:
            self.current_interval = lo
            return lo

        speed_term = min(max(speed, 0.0) / cfg.speed_for_min_interval, 1.0)
        activity = 0.5 * self.acceptance_rate + 0.5 * speed_term
        target = hi - activity * (hi - lo)

        if abs(target - self.current_interval) > cfg.hysteresis * (hi - lo):
            self.current_interval = target
        self.current_interval = min(max(self.current_interval, lo), hi)
        return self.current_interval
