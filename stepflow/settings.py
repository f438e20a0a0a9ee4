import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = int(os.getenv("PORT", "8000"))

    # Gateway selection: in-memory mock collaborators vs. the HTTP backend
    USE_MOCKS: bool = os.getenv("USE_MOCKS", "true").lower() == "true"
    GATEWAY_BASE_URL: str = os.getenv("GATEWAY_BASE_URL", "http://localhost:5000/api")
    GATEWAY_TIMEOUT_SEC: float = float(os.getenv("GATEWAY_TIMEOUT_SEC", "8.0"))

    # Upper bound for any single adapter call; expiry is reported as a failed operation
    OPERATION_TIMEOUT_SEC: float = float(os.getenv("OPERATION_TIMEOUT_SEC", "10.0"))

    # Payment (amounts in cents)
    MIN_PAYMENT_CENTS: int = int(os.getenv("MIN_PAYMENT_CENTS", "50"))
    DEFAULT_PAYMENT_CENTS: int = int(os.getenv("DEFAULT_PAYMENT_CENTS", "50000"))
    PAYMENT_CURRENCY: str = os.getenv("PAYMENT_CURRENCY", "usd")

    DIRECTORY_PAGE_LIMIT: int = int(os.getenv("DIRECTORY_PAGE_LIMIT", "10"))

    # Mock collaborators
    MOCK_OTP_CODE: str = os.getenv("MOCK_OTP_CODE", "123456")
    MOCK_LATENCY_MS: int = int(os.getenv("MOCK_LATENCY_MS", "0"))

    # In-process workflow registry
    MAX_ACTIVE_WORKFLOWS: int = int(os.getenv("MAX_ACTIVE_WORKFLOWS", "1000"))

    # Security & Privacy
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"

settings = Settings()
