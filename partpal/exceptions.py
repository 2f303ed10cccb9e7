# partpal/exceptions.py
"""Domain errors raised by the services and rendered by `partpal.main`.

Each error knows its HTTP status and the public `error`/`message` pair that
ends up in the response envelope. Internal details never go into `message`
for store failures.
"""


class PartPalError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str = "Something went wrong", error: str = None):
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error


class ValidationError(PartPalError):
    status_code = 400
    error = "Validation failed"


class NotFoundError(PartPalError):
    status_code = 404
    error = "Not found"

    def __init__(self, entity: str, message: str = None):
        super().__init__(
            message or f"{entity} with this ID does not exist",
            error=f"{entity} not found",
        )
        self.entity = entity


class StoreUnavailableError(PartPalError):
    status_code = 503
    error = "Service unavailable"
