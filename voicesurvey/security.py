"""
Twilio webhook signature validation.
"""
import logging
from typing import Optional, Sequence, Tuple
from urllib.parse import parse_qs

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import PlainTextResponse, Response
from starlette.status import HTTP_403_FORBIDDEN
from twilio.request_validator import RequestValidator

logger = logging.getLogger(__name__)


class TwilioSignatureMiddleware(BaseHTTPMiddleware):
    """Reject voice webhooks whose X-Twilio-Signature does not match."""

    def __init__(
        self,
        app,
        validator: Optional[RequestValidator],
        enabled: bool,
        protected_prefixes: Optional[Sequence[str]] = None,
        public_base_url: str = "",
    ) -> None:
        super().__init__(app)
        self.validator = validator
        self.enabled = enabled and validator is not None
        self.protected_prefixes: Tuple[str, ...] = tuple(protected_prefixes or ())
        self.public_base_url = public_base_url.rstrip("/")

    def _is_protected(self, path: str) -> bool:
        return any(path == p or path.startswith(p.rstrip("/") + "/") for p in self.protected_prefixes)

    def _signed_url(self, request: Request) -> str:
        """URL Twilio signed; behind a proxy it is the public base, not our host."""
        if not self.public_base_url:
            return str(request.url)
        url = f"{self.public_base_url}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        return url

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self.enabled or not self._is_protected(request.url.path):
            return await call_next(request)

        signature = request.headers.get("X-Twilio-Signature")
        if not signature:
            logger.warning(f"Missing Twilio signature for {request.url.path}")
            return PlainTextResponse("Missing Twilio signature", status_code=HTTP_403_FORBIDDEN)

        body = await request.body()
        params = _parse_body(body, request.headers.get("content-type", ""))

        if not self.validator.validate(self._signed_url(request), params, signature):
            logger.warning(f"Invalid Twilio signature for {request.url.path}")
            return PlainTextResponse("Invalid Twilio signature", status_code=HTTP_403_FORBIDDEN)

        async def receive() -> dict:
            return {"type": "http.request", "body": body, "more_body": False}

        return await call_next(Request(request.scope, receive))


def _parse_body(body: bytes, content_type: str):
    if "application/x-www-form-urlencoded" in content_type:
        parsed = parse_qs(body.decode(), keep_blank_values=True)
        return {key: values[0] if len(values) == 1 else values for key, values in parsed.items()}
    return {}
