from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from typing import Any, Dict, Optional

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

class TokenResponse(BaseModel):
    """Token endpoint response as issued by the authorization server."""

    model_config = ConfigDict(strict=True, extra="ignore")

    access_token: str = ""
    refresh_token: str = ""
    token_type: str = ""
    expires_in: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)
    id_token: str = ""

    @model_validator(mode="before")
    @classmethod
    def match_keys_case_insensitively(cls, data: Any) -> Any:
        """Accept keys differing from the field names only in case; an exact match wins."""
        if not isinstance(data, dict):
            return data
        matched = dict(data)
        for name in cls.model_fields:
            if name in data:
                continue
            for key, value in data.items():
                if isinstance(key, str) and key.lower() == name:
                    matched[name] = value
                    break
        return matched

    @field_validator("*", mode="before")
    @classmethod
    def null_as_zero_value(cls, value, info: ValidationInfo):
        # A JSON null leaves the field at its zero value
        if value is None:
            return cls.model_fields[info.field_name].default
        return value

class ProxyResponse(BaseModel):
    """Response relayed to the caller for one proxied exchange."""
    status_code: int
    body: bytes = b""
    content_type: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
