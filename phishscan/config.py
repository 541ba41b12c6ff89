from pydantic import Field
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # API Configuration
    APP_NAME: str = "PhishScan"
    VERSION: str = "1.0.0"
    API_PREFIX: str = ""
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Feedback store
    DATABASE_URL: str = "sqlite:///./phishscan.db"
    FEEDBACK_ENABLED: bool = True

    # Reputation API Keys
    IPQS_API_KEY: Optional[str] = None
    STALKPHISH_API_KEY: Optional[str] = None

    # Cache
    CACHE_TTL: int = 60 * 60
    CACHE_CHECK_PERIOD: int = 120

    # Network budgets (seconds)
    REPUTATION_TIMEOUT: float = 15.0
    REDIRECT_TIMEOUT: float = 10.0
    MAX_REDIRECTS: int = 10
    DNS_TIMEOUT: float = 5.0

    # Verdict thresholds (URL scans and email scans are tuned separately)
    URL_MALICIOUS_THRESHOLD: int = 70
    URL_SUSPICIOUS_THRESHOLD: int = 40
    EMAIL_MALICIOUS_THRESHOLD: int = 80
    EMAIL_SUSPICIOUS_THRESHOLD: int = 50

    # Email link fan-out
    MAX_LINK_CONCURRENCY: int = Field(default=10, ge=1)

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
