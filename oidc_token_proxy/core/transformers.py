import logging
from abc import ABC, abstractmethod
from typing import Dict, Type

from pydantic import ValidationError

from oidc_token_proxy.models.schemas import TokenResponse

logger = logging.getLogger(__name__)


class TransformError(ValueError):
    """Raised when a response body cannot be transformed."""


class BodyTransformer(ABC):
    """
    Rewrites a successful backend response body before it is relayed.

    Implementations must keep every field they do not explicitly target and
    raise TransformError instead of returning a partial body.
    """

    name: str = ""

    @abstractmethod
    def transform(self, body: bytes) -> bytes:
        """
        Transform a backend response body.

        Args:
            body: Raw body received from the backend

        Returns:
            The body to relay to the caller

        Raises:
            TransformError: If the body cannot be parsed
        """


class IdentityTransformer(BodyTransformer):
    """Relays the backend body unchanged."""

    name = "identity"

    def transform(self, body: bytes) -> bytes:
        return body


class AccessTokenToIdTokenTransformer(BodyTransformer):
    """Copies access_token into id_token of a token response."""

    name = "access_token_to_id_token"

    def transform(self, body: bytes) -> bytes:
        try:
            token_response = TokenResponse.model_validate_json(body)
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(loc) for loc in err.get('loc', ())) or '<root>'}: {err.get('msg', 'invalid value')}"
                for err in e.errors()
            )
            raise TransformError(f"invalid token response ({details})") from e

        token_response.id_token = token_response.access_token
        logger.debug("Copied access_token into id_token (token_type=%s)", token_response.token_type)
        return token_response.model_dump_json().encode()


TRANSFORMERS: Dict[str, Type[BodyTransformer]] = {
    IdentityTransformer.name: IdentityTransformer,
    AccessTokenToIdTokenTransformer.name: AccessTokenToIdTokenTransformer,
}


def get_transformer(name: str) -> BodyTransformer:
    """
    Look up a transformer by its registered name.

    Raises:
        KeyError: If no transformer is registered under the name
    """
    try:
        return TRANSFORMERS[name]()
    except KeyError:
        raise KeyError(f"unknown body transformer '{name}'") from None
