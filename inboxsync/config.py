"""
Zero-Configuration management for inboxsync
All settings have sensible defaults - no .env required
"""
import os
from pathlib import Path


class Config:
    """Application configuration with zero-config defaults"""

    # Application paths (auto-created)
    BASE_DIR: Path = Path.home() / '.inboxsync'
    LOGS_DIR: Path = BASE_DIR / 'logs'
    SESSION_FILE: Path = BASE_DIR / 'session.json'

    # Remote notification API
    API_BASE_URL: str = 'http://localhost:8080/api'
    REQUEST_TIMEOUT: int = 15
    HTTP2: bool = True

    # Polling and toast defaults (milliseconds, as the dashboard uses)
    POLL_INTERVAL_MS: int = 30000
    TOAST_DURATION_MS: int = 5000
    TOAST_MAX_VISIBLE: int = 0  # 0 = unlimited

    # "sequential" acknowledges unread ids one by one, "bulk" uses read-all
    MARK_ALL_STRATEGY: str = 'sequential'

    # Logging defaults
    LOG_LEVEL: str = 'INFO'

    def __init__(self):
        """Initialize configuration"""
        # Optional: Override with environment variables if present
        self._load_env_overrides()

        # Create necessary directories
        self.LOGS_DIR.mkdir(exist_ok=True, parents=True)

    def _load_env_overrides(self):
        """Load any environment variable overrides (optional)"""
        if os.getenv('INBOXSYNC_HOME'):
            self.BASE_DIR = Path(os.getenv('INBOXSYNC_HOME'))
            self.LOGS_DIR = self.BASE_DIR / 'logs'
            self.SESSION_FILE = self.BASE_DIR / 'session.json'
        if os.getenv('API_BASE_URL'):
            self.API_BASE_URL = os.getenv('API_BASE_URL').rstrip('/')
        if os.getenv('REQUEST_TIMEOUT'):
            self.REQUEST_TIMEOUT = int(os.getenv('REQUEST_TIMEOUT'))
        if os.getenv('HTTP2'):
            self.HTTP2 = os.getenv('HTTP2').lower() in ('1', 'true', 'yes')
        if os.getenv('POLL_INTERVAL_MS'):
            self.POLL_INTERVAL_MS = int(os.getenv('POLL_INTERVAL_MS'))
        if os.getenv('TOAST_DURATION_MS'):
            self.TOAST_DURATION_MS = int(os.getenv('TOAST_DURATION_MS'))
        if os.getenv('TOAST_MAX_VISIBLE'):
            self.TOAST_MAX_VISIBLE = int(os.getenv('TOAST_MAX_VISIBLE'))
        if os.getenv('MARK_ALL_STRATEGY'):
            self.MARK_ALL_STRATEGY = os.getenv('MARK_ALL_STRATEGY').lower()
        if os.getenv('LOG_LEVEL'):
            self.LOG_LEVEL = os.getenv('LOG_LEVEL')

    @classmethod
    def validate(cls) -> bool:
        """Validate configuration"""
        instance = cls()
        if instance.MARK_ALL_STRATEGY not in ('sequential', 'bulk'):
            raise ValueError(f"Unsupported MARK_ALL_STRATEGY: {instance.MARK_ALL_STRATEGY}")
        if instance.POLL_INTERVAL_MS <= 0:
            raise ValueError("POLL_INTERVAL_MS must be positive")
        if instance.TOAST_DURATION_MS <= 0:
            raise ValueError("TOAST_DURATION_MS must be positive")
        return True


# Create singleton instance
config = Config()
