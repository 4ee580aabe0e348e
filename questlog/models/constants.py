"""Constants for questlog.

This module centralizes all magic numbers and default values used throughout the application.
"""


# Leveling curve: level L >= 2 starts at LEVEL_XP_STEP * L * (L + 1) / 2 total XP
LEVEL_XP_STEP = 100
MIN_LEVEL = 1

# Task defaults
DEFAULT_ESTIMATED_XP = 0
# Upper bound for any estimated XP (stored in an INTEGER column)
MAX_ESTIMATED_XP = 1_000_000

# Dashboard pagination
DASHBOARD_DEFAULT_LIMIT = 20
DASHBOARD_MAX_LIMIT = 100

# Completed-task history pagination
HISTORY_DEFAULT_LIMIT = 50
HISTORY_MAX_LIMIT = 100

# External sync defaults
DEFAULT_EXTERNAL_XP = 25
DEFAULT_EXTERNAL_STATS = ("Productivity",)
MAX_FORMULA_LENGTH = 200
