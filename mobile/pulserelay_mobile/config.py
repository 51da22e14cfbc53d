"""
Mobile client configuration.

Environment Variables:
    PULSERELAY_API_URL    - Backend base URL
    PULSERELAY_TOKEN      - Mobile API token (Bearer)
    PULSERELAY_PREFS_DB   - Device preference store path
    PULSERELAY_TIMEOUT_S  - HTTP timeout in seconds (default: 10)
    PULSERELAY_LOG_LEVEL  - Logging level
"""
import logging
import os
import sys
from dataclasses import dataclass

DEFAULT_API_URL = "https://pulse.brocosoup.fr"


@dataclass
class MobileConfig:
    """Configuration for the mobile client."""
    api_url: str = DEFAULT_API_URL
    token: str = ""

    # HTTP
    timeout_s: float = 10.0

    # Local storage
    prefs_db: str = "~/.pulserelay/prefs.db"

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "MobileConfig":
        """Load configuration from environment variables."""
        return cls(
            api_url=os.environ.get("PULSERELAY_API_URL", DEFAULT_API_URL),
            token=os.environ.get("PULSERELAY_TOKEN", ""),
            timeout_s=float(os.environ.get("PULSERELAY_TIMEOUT_S", "10")),
            prefs_db=os.environ.get("PULSERELAY_PREFS_DB", "~/.pulserelay/prefs.db"),
            log_level=os.environ.get("PULSERELAY_LOG_LEVEL", "INFO"),
        )

    @property
    def prefs_path(self) -> str:
        return os.path.expanduser(self.prefs_db)


def setup_logging(config: MobileConfig) -> None:
    """Configure stdlib logging for the client process."""
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )
