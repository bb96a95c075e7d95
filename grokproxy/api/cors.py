"""CORS handling for the public endpoints."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from fastapi import Response
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..config_loader import config_section

DEFAULT_MAX_AGE = 86400


@dataclass(frozen=True)
class CorsSettings:
    allow_origin: str = "*"
    allow_methods: str = "GET, POST, OPTIONS"
    allow_headers: str = "Content-Type, Authorization"
    max_age: int = DEFAULT_MAX_AGE

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "CorsSettings":
        cors_cfg = config_section(config, "proxy_settings", "cors")
        return cls(
            allow_origin=str(cors_cfg.get("allow_origin", "*")),
            max_age=int(cors_cfg.get("max_age", DEFAULT_MAX_AGE)),
        )

    def preflight_headers(self) -> dict[str, str]:
        return {
            "Access-Control-Allow-Origin": self.allow_origin,
            "Access-Control-Allow-Methods": self.allow_methods,
            "Access-Control-Allow-Headers": self.allow_headers,
            "Access-Control-Max-Age": str(self.max_age),
        }


def build_preflight_handler(settings: CorsSettings) -> Callable[[], Awaitable[Response]]:
    async def preflight() -> Response:
        """CORS preflight: 200 with no body."""
        return Response(status_code=200, headers=settings.preflight_headers())

    return preflight


class AllowOriginMiddleware:
    """Stamps ``Access-Control-Allow-Origin`` on every HTTP response.

    Plain ASGI middleware, so request bodies and disconnect messages reach the
    endpoints untouched and streaming responses pass straight through.
    """

    def __init__(self, app: ASGIApp, allow_origin: str = "*") -> None:
        self.app = app
        self.allow_origin = allow_origin

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_origin(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                if "access-control-allow-origin" not in headers:
                    headers.append("Access-Control-Allow-Origin", self.allow_origin)
            await send(message)

        await self.app(scope, receive, send_with_origin)
