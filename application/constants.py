"""Application-level constants."""

# Session store keys (shared by the orchestrator, the poller and status readers)
AI_QUEUE_STATUS_KEY = "aiQueueStatus"
CURRENT_AI_SESSION_ID_KEY = "currentAISessionId"
AI_SESSION_JOBS_KEY = "aiSessionJobs"
SHOW_LEVEL_NAMES_KEY = "showLevelNames"

SESSION_ID_PREFIX = "session-"

# Interactive timings (seconds); polling budgets live in PollingConfig
SEARCH_DEBOUNCE_S = 0.3

# Placeholder for a level without nodes
EMPTY_LEVEL_MESSAGE = "No labels available. Import taxonomy"

# Record queue page size
QUEUE_PAGE_SIZE = 20
