import os
import tempfile

# Remote assistant service (OpenAI Assistants v2 REST API)
OPENAI_API_KEY: str = os.environ.get("OPENAI_API_KEY", "")
CR_OPENAI_BASE_URL: str = os.environ.get("CR_OPENAI_BASE_URL", "https://api.openai.com/v1")
CR_OPENAI_TIMEOUT: float = float(os.environ.get("CR_OPENAI_TIMEOUT", "60"))
CR_ASSISTANT_ID: str = os.environ.get("CR_ASSISTANT_ID", "")
CR_ASSISTANT_MODEL: str = os.environ.get("CR_ASSISTANT_MODEL", "gpt-4o-mini")

# Bearer tokens issued by the authentication service
CR_JWT_SECRET: str = os.environ.get("CR_JWT_SECRET", "")
CR_TOKEN_TTL_DAYS: int = int(os.environ.get("CR_TOKEN_TTL_DAYS", "30"))

# Run completion
CR_POLL_INTERVAL: float = float(os.environ.get("CR_POLL_INTERVAL", "1"))
CR_POLL_MAX_ATTEMPTS: int = int(os.environ.get("CR_POLL_MAX_ATTEMPTS", "60"))
CR_STRICT_CONTEXT_LOCK: bool = os.environ.get("CR_STRICT_CONTEXT_LOCK", "false").lower() in ("1", "true", "yes")

# State: empty path keeps thread/profile maps in process memory
CR_STATE_DB_PATH: str = os.environ.get("CR_STATE_DB_PATH", "")

# Uploads
CR_UPLOAD_DIR: str = os.environ.get("CR_UPLOAD_DIR", tempfile.gettempdir())
CR_MAX_UPLOAD_MB: float = float(os.environ.get("CR_MAX_UPLOAD_MB", "50"))
CR_MAX_UPLOAD_BYTES: int = int(CR_MAX_UPLOAD_MB * 1024 * 1024)
CR_ADMIN_API_KEY: str = os.environ.get("CR_ADMIN_API_KEY", "")
