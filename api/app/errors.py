class ArchiveError(Exception):
    """
    Base class for errors that map onto an HTTP response.
    Subclasses pin the status code and a stable machine-readable code.
    """
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


class InvalidFilenameError(ArchiveError):
    status_code = 400
    code = "invalid_filename"


class AccessDeniedError(ArchiveError):
    status_code = 403
    code = "access_denied"


class WorldNotFoundError(ArchiveError):
    status_code = 404
    code = "not_found"


class RateLimitExceededError(ArchiveError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, message: str, reset_time: int):
        super().__init__(message)
        self.reset_time = reset_time

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["reset_time"] = self.reset_time
        return payload


class DirectoryAccessError(ArchiveError):
    status_code = 500
    code = "directory_unavailable"
