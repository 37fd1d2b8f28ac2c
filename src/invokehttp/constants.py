"""Constants shared across the invokehttp pipeline.

Centralizes attribute keys, relationship names and HTTP defaults to avoid
duplication across modules.
"""

# Attribute keys written after reading the response
STATUS_CODE = "invokehttp.status.code"
STATUS_MESSAGE = "invokehttp.status.message"
RESPONSE_BODY = "invokehttp.response.body"
REQUEST_URL = "invokehttp.request.url"
TRANSACTION_ID = "invokehttp.tx.id"
REMOTE_DN = "invokehttp.remote.dn"
EXCEPTION_CLASS = "invokehttp.exception.class"
EXCEPTION_MESSAGE = "invokehttp.exception.message"

# Core work item attributes
MIME_TYPE = "mime.type"
UUID_ATTRIBUTE = "uuid"
FILENAME_ATTRIBUTE = "filename"
PATH_ATTRIBUTE = "path"

# Attributes never converted to request headers
IGNORED_ATTRIBUTES = frozenset(
    {
        STATUS_CODE,
        STATUS_MESSAGE,
        RESPONSE_BODY,
        REQUEST_URL,
        TRANSACTION_ID,
        REMOTE_DN,
        EXCEPTION_CLASS,
        EXCEPTION_MESSAGE,
        UUID_ATTRIBUTE,
        FILENAME_ATTRIBUTE,
        PATH_ATTRIBUTE,
    }
)

# Header names that may not be configured as dynamic headers, mapped to the
# warning emitted when one is skipped.
EXCLUDED_HEADERS: dict[str, str] = {
    "Trusted Hostname": (
        "HTTP request header '{header}' excluded. "
        "Configure TLS trust material on the transport instead."
    ),
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_CONTENT_TYPE_EXPRESSION = "${" + MIME_TYPE + "}"
DEFAULT_MAX_ATTRIBUTE_LENGTH = 256
DEFAULT_CACHE_MAX_SIZE_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0
DEFAULT_READ_TIMEOUT_SECONDS = 15.0

# Methods that carry the work item payload as the request body
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

# HTTP status classes (status_code // 100)
STATUS_CLASS_SUCCESS = 2
STATUS_CLASS_SERVER_ERROR = 5

# Chunk size for streaming reads and chunked uploads
DEFAULT_CHUNK_SIZE = 8192

PROXY_TYPE_HTTP = "http"
PROXY_TYPE_HTTPS = "https"
