"""Response envelopes returned by the API routes."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ApiEnvelope(BaseModel):
    """Consistent response wrapper.

    Successful calls carry ``data`` (and ``count`` for lists). Failed calls
    carry ``error`` plus, where available, the upstream ``message`` verbatim.
    """

    success: bool
    endpoint: Optional[str] = None
    data: Optional[Any] = None
    count: Optional[int] = None
    error: Optional[str] = None
    message: Optional[str] = None
    request_id: Optional[str] = Field(default=None, alias="requestId")

    model_config = {"populate_by_name": True}

    def to_response(self) -> dict:
        """Serialize with unset fields dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def success_envelope(
    endpoint: str,
    data: Any = None,
    message: Optional[str] = None,
    with_count: bool = False,
) -> dict:
    """Build a success envelope dict.

    Args:
        endpoint: Short name of the operation (e.g. ``place-order``)
        data: Payload returned by the upstream broker
        message: Optional human-readable summary
        with_count: Add ``count`` (length of ``data``, 0 when not a list)

    Returns:
        JSON-ready dict
    """
    envelope = ApiEnvelope(success=True, endpoint=endpoint, data=data, message=message)
    if with_count:
        envelope.count = len(data) if isinstance(data, list) else 0
    return envelope.to_response()


def error_envelope(
    error: str,
    message: Optional[str] = None,
    endpoint: Optional[str] = None,
    data: Any = None,
    request_id: Optional[str] = None,
) -> dict:
    """Build an error envelope dict."""
    return ApiEnvelope(
        success=False,
        endpoint=endpoint,
        data=data,
        error=error,
        message=message,
        request_id=request_id or None,
    ).to_response()


__all__ = [
    "ApiEnvelope",
    "error_envelope",
    "success_envelope",
]
