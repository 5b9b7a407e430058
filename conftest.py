import os

# Settings are read once and cached, so the test environment must be in place
# before anything under libs/ or services/ is imported.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("CAL_API_URL", "https://cal.test/v2")
os.environ.setdefault("CAL_CLIENT_ID", "test-client-id")
os.environ.setdefault("CAL_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("CAL_WEBHOOK_SECRET", "test-webhook-secret")

from libs.common.config import get_settings  # noqa: E402

get_settings.cache_clear()
