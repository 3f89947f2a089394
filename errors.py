# errors.py


class TrackerError(Exception):
    """Base error; handlers turn it into a JSON ``{"error": ...}`` response."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TrackerError):
    status_code = 400


class NotFoundError(TrackerError):
    status_code = 404


class NoFileError(TrackerError):
    status_code = 400


class PayloadTooLargeError(TrackerError):
    status_code = 413
