"""Text encoding of binary generation results for the sync payload."""

import base64
from typing import Any, Optional

DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_mime_type(metadata: Optional[dict[str, Any]]) -> str:
    """MIME type recorded by the generator in metadata["fileType"], if any."""
    if metadata:
        file_type = metadata.get("fileType")
        if isinstance(file_type, str) and "/" in file_type:
            return file_type
    return DEFAULT_MIME_TYPE


def to_data_url(payload: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    """Encode bytes as a base64 ``data:`` URL.

    Example:
        >>> to_data_url(b"hi", "text/plain")
        'data:text/plain;base64,aGk='
    """
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"
