"""
Skill Scanner API Protocol

Endpoint paths, sidecar invocation constants and the multipart/form-data
encoding used for archive uploads.
"""

import uuid
from typing import List, Tuple

# Sidecar package and entry point
SCANNER_PACKAGE = "cisco-ai-skill-scanner"
SCANNER_SUBCOMMAND = "skill-scanner-api"

# HTTP endpoints (relative to the base URL)
HEALTH_PATH = "/health"
SCAN_UPLOAD_PATH = "/scan-upload"

# Upload part
UPLOAD_FIELD = "file"
UPLOAD_FILENAME = "skill.zip"
UPLOAD_CONTENT_TYPE = "application/zip"

CRLF = b"\r\n"
ENCODING = "utf-8"


def endpoint(base_url: str, path: str) -> str:
    """Join a base URL and an endpoint path without doubling slashes."""
    return f"{base_url.rstrip('/')}{path}"


def sidecar_arguments(port: int) -> List[str]:
    """Arguments that run the scanner API through a uvx-style launcher."""
    return ["--from", SCANNER_PACKAGE, SCANNER_SUBCOMMAND, "--port", str(port)]


def new_boundary() -> str:
    return f"----SkillSMPBoundary{uuid.uuid4().hex}"


def encode_multipart(
    fields: List[Tuple[str, str]],
    file_bytes: bytes,
    boundary: str,
    file_field: str = UPLOAD_FIELD,
    filename: str = UPLOAD_FILENAME,
    content_type: str = UPLOAD_CONTENT_TYPE,
) -> bytes:
    """
    Encode a multipart/form-data body.

    Form fields come first, followed by a single file part.

    Args:
        fields: Ordered (name, value) form fields
        file_bytes: Raw content of the file part
        boundary: Boundary token (without leading dashes)
        file_field: Form name of the file part
        filename: Filename announced for the file part
        content_type: MIME type of the file part

    Returns:
        The encoded request body
    """
    delimiter = f"--{boundary}".encode(ENCODING)
    parts: List[bytes] = []

    for name, value in fields:
        parts.append(delimiter + CRLF)
        parts.append(f'Content-Disposition: form-data; name="{name}"'.encode(ENCODING) + CRLF)
        parts.append(CRLF)
        parts.append(value.encode(ENCODING) + CRLF)

    parts.append(delimiter + CRLF)
    parts.append(
        f'Content-Disposition: form-data; name="{file_field}"; filename="{filename}"'.encode(ENCODING)
        + CRLF
    )
    parts.append(f"Content-Type: {content_type}".encode(ENCODING) + CRLF)
    parts.append(CRLF)
    parts.append(file_bytes)
    parts.append(CRLF)

    parts.append(delimiter + b"--" + CRLF)

    return b"".join(parts)


def multipart_content_type(boundary: str) -> str:
    return f"multipart/form-data; boundary={boundary}"
