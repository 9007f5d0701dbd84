import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "submission")
    # Stored session records outlive the quiz so the audit trail stays readable
    SESSION_TTL_SEC: int = int(os.getenv("SESSION_TTL_SEC", str(7 * 24 * 3600)))

    # Violation policy
    STRIKE_LIMIT: int = int(os.getenv("STRIKE_LIMIT", "1"))  # 2nd environmental violation escalates
    REENTRY_SECONDS: int = int(os.getenv("REENTRY_SECONDS", "10"))
    GRACE_PERIOD_MS: int = int(os.getenv("GRACE_PERIOD_MS", "5000"))
    WARNING_DISPLAY_MS: int = int(os.getenv("WARNING_DISPLAY_MS", "5000"))
    BLUR_SUPPRESS_AFTER_FS_EXIT_MS: int = int(os.getenv("BLUR_SUPPRESS_AFTER_FS_EXIT_MS", "500"))

    # Poll cadence
    COUNTDOWN_POLL_MS: int = int(os.getenv("COUNTDOWN_POLL_MS", "500"))
    DEADLINE_POLL_MS: int = int(os.getenv("DEADLINE_POLL_MS", "1000"))

    # Submission collaborator
    SUBMISSION_API_URL: str = os.getenv("SUBMISSION_API_URL", "")
    SUBMIT_TIMEOUT_SEC: int = int(os.getenv("SUBMIT_TIMEOUT_SEC", "5"))
    # Modes:
    # - "sync": send inline only (no RQ)
    # - "rq": queue only
    # - "hybrid": try sync first (deadline-bounded), then queue as backup
    FINAL_SUBMIT_MODE: str = os.getenv("FINAL_SUBMIT_MODE", "hybrid").lower()
    FINAL_SUBMIT_DEADLINE_SEC: float = float(os.getenv("FINAL_SUBMIT_DEADLINE_SEC", "8.0"))
    FINAL_SUBMIT_SYNC_RETRIES: int = int(os.getenv("FINAL_SUBMIT_SYNC_RETRIES", "1"))

    # Security & Privacy
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()
