from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from keydash.schemas.errors import AuthenticationError, KeydashError


def _error_response(error: KeydashError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_response().model_dump(exclude_none=True),
    )


class ApiKeyMiddleware(BaseHTTPMiddleware):
    """Requires a valid bearer key on every path under ``prefix``."""

    def __init__(self, app, prefix: str = "/protected") -> None:
        super().__init__(app)
        self.prefix = prefix

    async def dispatch(self, request: Request, call_next):
        if not request.url.path.startswith(self.prefix):
            return await call_next(request)

        key_service = getattr(request.app.state, "key_service", None)
        if key_service is None:
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            return _error_response(AuthenticationError())

        token = auth_header[7:]
        if not token.strip():
            return _error_response(AuthenticationError())

        try:
            valid = await key_service.validate_key(token)
        except KeydashError as exc:
            return _error_response(exc)
        if not valid:
            return _error_response(AuthenticationError())

        return await call_next(request)
