"""Game constants shared by the progression, normalizer and mission modules"""

# Leveling curve: cumulative XP to reach level L is XP_CURVE_FACTOR * L^2
XP_CURVE_FACTOR = 50

# Fitness sync rates (XP per meter)
XP_PER_METER_RUN = 0.27   # Walk / Run / Hike
XP_PER_METER_BIKE = 0.09  # Cycling, a third of the endurance rate

ENDURANCE_ACTIVITY_TYPES = frozenset({"Run", "Walk", "Hike"})
CYCLING_ACTIVITY_TYPES = frozenset({"Ride", "VirtualRide", "EBikeRide"})

# Listening: one XP per full minute of playback
MS_PER_LISTENING_XP = 60_000

# Study sessions
STUDY_DAILY_CAP = 1500
XP_PER_MINUTE_STUDY = 7
SESSION_SHORT_MIN = 25
SESSION_LONG_MIN = 50
STUDY_SESSION_PRESETS = (SESSION_SHORT_MIN, SESSION_LONG_MIN)

# Daily missions
DAILY_MISSION_COUNT = 5
SAME_RANK_MISSION_TARGET = 2
MISSION_BASE_XP_RATIO = 0.02
WEEKEND_MULTIPLIER = 1.50

# Rank distance -> XP multiplier (distance = mission rank index - user rank index)
RANK_MULTIPLIER_TWO_BELOW = 0.50
RANK_MULTIPLIER_ONE_BELOW = 0.75
RANK_MULTIPLIER_SAME = 1.00
RANK_MULTIPLIER_ABOVE = 1.25

# Mission selection window around the user's rank
RANK_WINDOW_BELOW = 2
RANK_WINDOW_ABOVE = 1

# Fitness sync rate limit
FITNESS_SYNC_COOLDOWN_KEY = "strava_sync_cooldown_end"
