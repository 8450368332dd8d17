"""
Application constants to replace magic numbers throughout the codebase.
"""

# Signal input limits
MIN_SCRIPT_NAME_LENGTH = 1
MAX_SCRIPT_NAME_LENGTH = 200
MIN_GIST_LENGTH = 10
MAX_GIST_LENGTH = 5000

# Confidence scale (0.0 to 1.0 everywhere)
DEFAULT_CONFIDENCE_SCORE = 0.0
MIN_CONFIDENCE = 0.0
MAX_CONFIDENCE = 1.0

# Contradiction confidence above this requires additional human review
CONTRADICTION_THRESHOLD = 0.4

# Keyword extraction
MIN_KEYWORD_LENGTH = 5
MAX_KEYWORDS = 5
STOP_WORDS = frozenset({
    'there', 'which', 'their', 'about', 'would', 'these', 'other',
    'could', 'should', 'where', 'while', 'after', 'before', 'being',
})

# Default connector timeout (seconds)
DEFAULT_API_TIMEOUT = 10

# Database query limits
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
RECENT_AUDIT_LIMIT = 20
RECENT_JOB_LIMIT = 5

# Demo user placeholder (no auth layer)
DEMO_USER_ID = 'demo-user'
DEMO_USER_EMAIL = 'demo@blackgpt.local'
