import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, NoReturn, Optional, Sequence

import httpx
import yaml
from fastapi import FastAPI
from pydantic import ValidationError

from oidc_token_proxy.config.settings import settings
from oidc_token_proxy.core.constants import INTROSPECTION_PATH, TOKEN_PATH
from oidc_token_proxy.core.middleware import ProxyMiddleware
from oidc_token_proxy.core.proxy import ProxyHandler
from oidc_token_proxy.core.transformers import IdentityTransformer, get_transformer
from oidc_token_proxy.models.config_models import AppConfig

logger = logging.getLogger(__name__)


class ConfigLoadError(RuntimeError):
    """Raised when configuration cannot be loaded or validated."""


def _raise_config_error(config_path: Path, reason: str, exc: Exception | None = None) -> NoReturn:
    message = f"Configuration error in '{config_path}': {reason}"
    logger.error(message)
    if exc is None:
        raise ConfigLoadError(message)
    raise ConfigLoadError(message) from exc


def _resolve_config_path() -> Path:
    return Path(settings.CONFIG_FILE).expanduser().resolve()


def load_config(config_path: Path | None = None) -> AppConfig:
    """Read and validate the proxy configuration file (YAML or JSON)."""
    config_path = config_path or _resolve_config_path()

    try:
        with config_path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
    except FileNotFoundError as exc:
        _raise_config_error(
            config_path,
            "file not found. Set CONFIG_FILE to a valid YAML file path.",
            exc,
        )
    except PermissionError as exc:
        _raise_config_error(config_path, "file cannot be read due to permissions.", exc)
    except yaml.YAMLError as exc:
        _raise_config_error(config_path, f"invalid YAML syntax ({exc}).", exc)

    if not isinstance(config_data, dict):
        _raise_config_error(config_path, "top-level value must be a mapping.")

    try:
        config = AppConfig.from_dict(config_data)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(loc) for loc in err.get('loc', [])) or '<root>'}: {err.get('msg', 'invalid value')}"
            for err in exc.errors()
        )
        _raise_config_error(config_path, f"validation failed ({details}).", exc)

    logger.info("Configuration loaded from %s", config_path)
    return config


def build_proxy_handlers(
    config: AppConfig,
    debug: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, ProxyHandler]:
    """Create the handler for each proxied path from the configuration."""
    backend = config.backend
    common = dict(
        debug=debug,
        timeout=backend.timeout,
        http2=backend.http2,
        max_body_bytes=config.listener.max_body_bytes,
        transport=transport,
    )

    handlers = {
        TOKEN_PATH: ProxyHandler(
            backend.token_endpoint,
            get_transformer(backend.token_transformer),
            **common,
        )
    }
    if backend.introspection_endpoint:
        handlers[INTROSPECTION_PATH] = ProxyHandler(
            backend.introspection_endpoint,
            IdentityTransformer(),
            **common,
        )
    else:
        logger.info("No introspection endpoint configured, %s is disabled", INTROSPECTION_PATH)

    for path, handler in handlers.items():
        logger.info("Proxying %s -> %s (transformer: %s)", path, handler.backend_url, handler.transformer.name)
    if backend.timeout is None:
        logger.warning("No backend timeout configured; a hung backend blocks its request indefinitely")

    return handlers


def create_application(
    config: Optional[AppConfig] = None,
    debug: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings.configure_logging(debug=debug)
    if debug:
        logger.debug("Debug enabled")
    if config is None:
        config = load_config()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.config = config

    app.add_middleware(ProxyMiddleware, handlers=build_proxy_handlers(config, debug, transport))

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring."""
        return {"status": "healthy"}

    return app


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="oidc-token-proxy",
        description="Reverse proxy for an OAuth/OIDC token endpoint.",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug")
    return parser.parse_args(argv)


def run(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entrypoint for running the proxy."""
    import uvicorn

    args = _parse_args(argv)
    try:
        app = create_application(debug=args.debug)
    except ConfigLoadError:
        sys.exit(1)

    listener = app.state.config.listener
    logger.info("Starting server on %s:%d", listener.host, listener.port)
    uvicorn.run(
        app,
        host=listener.host,
        port=listener.port,
        log_level="debug" if args.debug else settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
