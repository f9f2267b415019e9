import logging
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing import Dict, Any, Optional

from oidc_token_proxy.core.transformers import TRANSFORMERS

logger = logging.getLogger(__name__)

class BackendConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    token_endpoint: str
    introspection_endpoint: Optional[str] = None
    token_transformer: str = "access_token_to_id_token"
    timeout: Optional[float] = Field(default=None, gt=0)
    http2: bool = False

    @field_validator("token_transformer")
    @classmethod
    def validate_transformer_name(cls, value: str) -> str:
        if value not in TRANSFORMERS:
            known = ", ".join(sorted(TRANSFORMERS))
            raise ValueError(f"unknown body transformer '{value}' (known: {known})")
        return value

class ListenerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = Field(ge=1, le=65535)
    max_body_bytes: Optional[int] = Field(default=None, gt=0)

class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    backend: BackendConfig
    listener: ListenerConfig

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'AppConfig':
        """
        Create AppConfig from a dictionary, typically loaded from YAML.

        Args:
            config_dict: Configuration dictionary

        Returns:
            AppConfig instance with parsed and validated configuration

        Raises:
            ValidationError: If the configuration data is invalid
        """
        try:
            return cls.model_validate(config_dict)
        except ValidationError as e:
            logger.error("Configuration validation failed: %s", str(e))
            raise
