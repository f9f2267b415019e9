import logging
from pydantic import ConfigDict
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "OIDC Token Proxy"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Proxy configuration file (YAML or JSON)
    CONFIG_FILE: str = "config.yaml"

    model_config = ConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def configure_logging(self, debug: bool = False):
        """Configure logging based on LOG_LEVEL, or DEBUG when debug output is requested."""
        if debug:
            log_level = logging.DEBUG
        else:
            log_level = getattr(logging, self.LOG_LEVEL.upper(), logging.INFO)
        logging.basicConfig(
            level=log_level,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        logging.getLogger().setLevel(log_level)

settings = Settings()
