from pydantic import BaseModel


class ExpiryRecord(BaseModel):
    """Value stored in the expiry cache for one upload key."""

    expires_at: str


class CreationResult(BaseModel):
    """Result of a creation (or creation-with-upload) request."""

    location: str
    offset: int = 0


class UploadStatus(BaseModel):
    status: str
    bytes_uploaded: int
    upload_key: str
