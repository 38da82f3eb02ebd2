"""Error taxonomy for the image pipeline.

Every error carries a fixed `user_message` that sessions surface as-is. The
exception text (str(exc)) holds the technical detail and is only logged.
"""

from __future__ import annotations


class ToolboxError(Exception):
    user_message = "Something went wrong, please try again"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message


class ValidationError(ToolboxError):
    """Upload rejected before any state was touched."""


class UnsupportedFormat(ValidationError):
    user_message = "Only JPEG and PNG images are supported"


class DecodeError(ValidationError):
    user_message = "The image could not be read"


class TransformError(ToolboxError):
    """Engine run failed; the previous derived artifact stays in place."""

    kind = "transform"


class InvalidDimensions(TransformError):
    kind = "dimensions"
    user_message = "Width and height must be positive whole numbers"


class EncodeError(TransformError):
    kind = "encode"
    user_message = "Failed to process the image, please try again"
