# phishing_detector/config.py
import os
import logging
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    """Runtime settings, read from the environment (and an optional .env file)"""
    db_path: str = "data/phishing_detector.db"
    data_dir: str = "data"
    warn_threshold: int = 30
    block_threshold: int = 60
    reanalysis_debounce_ms: int = 100
    warning_banner_timeout_ms: int = 10000
    log_level: str = "INFO"
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        settings = cls(
            db_path=os.getenv("PHISHING_DB_PATH", cls.db_path),
            data_dir=os.getenv("DATA_DIR", cls.data_dir),
            warn_threshold=int(os.getenv("WARN_THRESHOLD", cls.warn_threshold)),
            block_threshold=int(os.getenv("BLOCK_THRESHOLD", cls.block_threshold)),
            reanalysis_debounce_ms=int(os.getenv("REANALYSIS_DEBOUNCE_MS", cls.reanalysis_debounce_ms)),
            warning_banner_timeout_ms=int(os.getenv("WARNING_BANNER_TIMEOUT_MS", cls.warning_banner_timeout_ms)),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            debug=os.getenv("DEBUG", "").lower() in ("1", "true", "yes"),
        )
        logger.debug(f"Loaded settings: {settings}")
        return settings
