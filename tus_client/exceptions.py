"""Error taxonomy of the tus client.

``FileError`` covers the local side and missing server resources,
``TusError`` covers protocol failures. Both carry the HTTP status code and
response body when a response was received.
"""


class TusClientError(Exception):
    """Base class for every error raised by the client."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class FileError(TusClientError):
    """Local file or server-side resource problem."""

    pass


class ResourceNotFoundError(FileError):
    """Server reports the upload as missing (404) or gone (410)."""

    def __init__(self, message: str = "File not found.", status_code: int | None = None, body: str = ""):
        super().__init__(message, status_code, body)


class ResourceCreationError(FileError):
    """Creation or concatenation request did not return 201."""

    def __init__(self, message: str = "Unable to create resource.", status_code: int | None = None, body: str = ""):
        super().__init__(message, status_code, body)


class CorruptUploadError(FileError):
    """Uploaded bytes are inconsistent with the server state (416)."""

    def __init__(self, message: str = "The uploaded file is corrupt.", status_code: int | None = 416, body: str = ""):
        super().__init__(message, status_code, body)


class TusError(TusClientError):
    """Protocol level failure."""

    pass


class ConnectionFailedError(TusError):
    def __init__(self, message: str = "Couldn't connect to server."):
        super().__init__(message)


class UploadExpiredError(TusError):
    def __init__(self, message: str = "Upload expired."):
        super().__init__(message)
