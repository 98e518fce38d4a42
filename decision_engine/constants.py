"""
Constants shared across the decision engine.

The seed and traffic constants must stay identical to every other SDK
implementation; changing them re-buckets every user.
"""

SEED_VALUE = 1
MAX_TRAFFIC_PERCENT = 100
MAX_TRAFFIC_VALUE = 10_000

SEED_URL = "https://vwo.com"

RANDOM_ALGO = 1
ADVANCED_ALGO = 2

MEG_STORAGE_KEY_PREFIX = "_vwo_meta_meg_"
VWO_USER_ID_VARIABLE = "_vwoUserId"

NO_WINNER = -1

IMPACT_CONTROL_VARIATION_ID = 1
IMPACT_ENABLED_VARIATION_ID = 2

API_GET_FLAG = "getFlag"
API_TRACK_EVENT = "track"
API_SET_ATTRIBUTE = "setAttribute"

EVENT_VARIATION_SHOWN = "vwo_variationShown"
EVENT_SYNC_VISITOR_PROP = "vwo_syncVisitorProp"
