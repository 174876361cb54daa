"""Shared tracking constants.

Centralizes values used across validation, smoothing and region math so we
can document and adjust them in one place.
"""

# Mean Earth radius in meters (haversine)
EARTH_RADIUS_M = 6371000.0

# Meters per degree of latitude (approximately constant)
METERS_PER_DEGREE = 111320.0

# Default Kalman process noise (degrees^2 per step for coordinate channels)
DEFAULT_PROCESS_NOISE = 1e-5

# Measurement variance used when a fix reports no usable accuracy
DEFAULT_MEASUREMENT_NOISE = 1.0

# Region fitting defaults (degrees)
DEFAULT_MIN_SPAN = 0.01
DEFAULT_PADDING_SCALE = 1.2
EMPTY_REGION_SPAN = 100.0
MAX_LATITUDE_SPAN = 180.0
MAX_LONGITUDE_SPAN = 350.0

# Number of recent decisions used to compute the acceptance rate
ACCEPTANCE_WINDOW = 10

# Allowed sort keys for location queries
LOCATION_SORT_KEYS = (
    "timestamp",
    "latitude",
    "longitude",
    "altitude",
    "speed",
    "course",
    "accuracy",
)
