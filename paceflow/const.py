"""
Shared constants.
"""

SPORT_GENERIC = "Generic"
SPORT_RUNNING = "Running"
SPORT_CYCLING = "Cycling"
SPORT_HIKING = "Hiking"
SPORT_WALKING = "Walking"
SPORT_SWIMMING = "Swimming"
SPORT_TRANSITION = "Transition"  # Multisport transition

UNKNOWN = "Unknown"

# Sports whose sessions get pace analytics
PACE_SPORTS = frozenset({
    SPORT_HIKING,
    SPORT_WALKING,
    SPORT_RUNNING,
    SPORT_SWIMMING,
    SPORT_TRANSITION,
    SPORT_GENERIC,
})

# Minimum speed (m/s) for a sample to count as moving
TOLERANCE_MOVING_SPEED_SLOW_MOVING_SPORT = 0.1388   # 0.5 km/h
TOLERANCE_MOVING_SPEED_RUNNING_LIKE_SPORT = 0.7916  # 2.85 km/h
TOLERANCE_MOVING_SPEED_CYCLING_LIKE_SPORT = 1.41    # 5.07 km/h

# Record fields that may be listed in EncodeSpecifications.remove_fields
REMOVABLE_FIELDS = (
    "position_lat",
    "position_long",
    "distance",
    "altitude",
    "heart_rate",
    "cadence",
    "speed",
    "power",
    "temperature",
)

FIT_SIGNATURE = b".FIT"
GPX_NAMESPACE = "http://www.topografix.com/GPX/1/1"
GPX_TPX_NAMESPACE = "http://www.garmin.com/xmlschemas/TrackPointExtension/v1"
TCX_NAMESPACE = "http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2"
TCX_AX_NAMESPACE = "http://www.garmin.com/xmlschemas/ActivityExtension/v2"
