"""Wire-level constants of the tus resumable upload protocol."""

TUS_PROTOCOL_VERSION = "1.0.0"

DEFAULT_API_PATH = "/files"
DEFAULT_CHECKSUM_ALGORITHM = "sha256"

# Body type mandated for PATCH and creation-with-upload requests
HEADER_CONTENT_TYPE = "application/offset+octet-stream"

UPLOAD_TYPE_PARTIAL = "partial"
UPLOAD_TYPE_FINAL = "final"

HEADER_TUS_RESUMABLE = "Tus-Resumable"
HEADER_UPLOAD_LENGTH = "Upload-Length"
HEADER_UPLOAD_KEY = "Upload-Key"
HEADER_UPLOAD_CHECKSUM = "Upload-Checksum"
HEADER_UPLOAD_METADATA = "Upload-Metadata"
HEADER_UPLOAD_CONCAT = "Upload-Concat"
HEADER_UPLOAD_OFFSET = "Upload-Offset"
HEADER_LOCATION = "Location"
HEADER_CONTENT_LENGTH = "Content-Length"
HEADER_CONTENT_TYPE_NAME = "Content-Type"

EXPIRY_KEY_PREFIX = "tus:expiry:"
