"""Global constants for the pongarena application."""

# Collection names
USERS_COLLECTION = "users"
TOURNAMENTS_COLLECTION = "tournaments"
PARTICIPANTS_COLLECTION = "participants"
MATCHES_COLLECTION = "matches"

FIRESTORE_BATCH_LIMIT = 400

# Tournament status values
TOURNAMENT_DRAFT = "DRAFT"
TOURNAMENT_READY = "READY"
TOURNAMENT_RUNNING = "RUNNING"
TOURNAMENT_COMPLETED = "COMPLETED"
TOURNAMENT_STATUSES = (
    TOURNAMENT_DRAFT,
    TOURNAMENT_READY,
    TOURNAMENT_RUNNING,
    TOURNAMENT_COMPLETED,
)

# Bracket kinds
SINGLE_ELIMINATION = "SINGLE_ELIMINATION"
DOUBLE_ELIMINATION = "DOUBLE_ELIMINATION"
SUPPORTED_BRACKET_TYPES = (SINGLE_ELIMINATION,)

# Participant invite/membership states
INVITE_LOCAL = "LOCAL"
INVITE_INVITED = "INVITED"
INVITE_ACCEPTED = "ACCEPTED"
INVITE_PLACEHOLDER = "PLACEHOLDER"
INVITE_AI = "AI"
CLIENT_INVITE_STATES = (INVITE_LOCAL, INVITE_INVITED, INVITE_ACCEPTED)

PLACEHOLDER_ALIAS = "TBD"
AI_ALIAS_TEMPLATE = "AI #{number}"

# Match status values
MATCH_PENDING = "PENDING"
MATCH_FINISHED = "FINISHED"

SLOT_A = "A"
SLOT_B = "B"

# Request limits
TOURNAMENT_NAME_MIN_LENGTH = 3
TOURNAMENT_NAME_MAX_LENGTH = 80
ALIAS_MAX_LENGTH = 50
SEED_MAX = 256
MAX_PARTICIPANTS = 64
MIN_BRACKET_PARTICIPANTS = 2
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 50
