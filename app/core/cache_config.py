"""Cache TTL settings and key patterns"""

# Cache TTL (Time To Live) configurations in seconds
CACHE_TTL = {
    "course_progress": 300,   # 5 minutes
    "user_courses": 180,      # 3 minutes
    "learning_stats": 180,    # 3 minutes
    "purchase_stats": 60,     # 1 minute
}

# Keys written by cache_endpoint are "user:{user_id}:{prefix}:..."
CACHE_KEYS = {
    "course_progress": "course_progress",
    "user_courses": "user_courses",
    "learning_stats": "learning_stats",
    "purchase_stats": "purchase_stats",
}

# Cache invalidation patterns - what to clear when data changes
INVALIDATION_PATTERNS = {
    "progress_update": [
        "user:{}:course_progress:*",
        "user:{}:user_courses*",
        "user:{}:learning_stats*",
    ],
    "access_change": [
        "user:{}:*",
        "*purchase_stats*",
    ],
}
