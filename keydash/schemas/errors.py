from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    type: str
    param: str | None = None
    code: str | None = None


class KeydashError(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_type: str = "invalid_request_error",
        param: str | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.param = param
        self.code = code

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=self.message,
            type=self.error_type,
            param=self.param,
            code=self.code,
        )


class InvalidInputError(KeydashError):
    def __init__(self, message: str, param: str | None = None):
        super().__init__(
            message=message,
            status_code=400,
            error_type="invalid_request_error",
            param=param,
            code="invalid_input",
        )


class KeyNotFoundError(KeydashError):
    def __init__(self, key_id: str):
        super().__init__(
            message="API key not found",
            status_code=404,
            error_type="invalid_request_error",
            param="id",
            code="key_not_found",
        )
        self.key_id = key_id


class SecretConflictError(KeydashError):
    def __init__(self):
        super().__init__(
            message="API key secret already exists.",
            status_code=409,
            error_type="invalid_request_error",
            param="key",
            code="secret_conflict",
        )


class StorageUnavailableError(KeydashError):
    def __init__(self, detail: str | None = None):
        super().__init__(
            message="Key storage is unavailable.",
            status_code=500,
            error_type="server_error",
            code="storage_unavailable",
        )
        self.detail = detail


class KeyGenerationError(KeydashError):
    def __init__(self, attempts: int):
        super().__init__(
            message=f"Could not generate a unique API key after {attempts} attempts.",
            status_code=500,
            error_type="server_error",
            code="key_generation_failed",
        )


class AuthenticationError(KeydashError):
    def __init__(self):
        super().__init__(
            message="Invalid or missing API key.",
            status_code=401,
            error_type="authentication_error",
            code="authentication_error",
        )


class InternalServerError(KeydashError):
    def __init__(self):
        super().__init__(
            message="Internal server error.",
            status_code=500,
            error_type="server_error",
            code="internal_error",
        )
