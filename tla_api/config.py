import os
from typing import List

DATABASE_URL = os.getenv("TLA_DATABASE_URL", "sqlite:///./tla.db")

JWT_SECRET = os.getenv("JWT_SECRET", "fallback-secret-change-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
# 7 days
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", str(7 * 24 * 60)))

# Upper bound on the number of challenges frozen into one session plan
SESSION_SIZE = int(os.getenv("TLA_SESSION_SIZE", "5"))

# XP needed per level step
XP_PER_LEVEL = 100

SESSION_TYPES = ("main_path", "practice")


def cors_origins() -> List[str]:
    env_origins = os.getenv("FRONTEND_ORIGIN", "").strip()
    origins = [o.strip() for o in env_origins.split(",") if o.strip()]
    if not origins:
        origins = [
            "http://localhost:3000",
            "http://localhost:8081",
            "http://127.0.0.1:8081",
        ]
    return origins
