"""Failure taxonomy for a capture.

Everything except ``ResourceInlineFailure`` aborts the current operation and
reaches the user as its own message. Nothing is retried automatically.
"""
from __future__ import annotations


class PageLiteError(Exception):
    kind = "error"
    default_message = "PageLite operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class CaptureUnavailable(PageLiteError):
    kind = "capture_unavailable"
    default_message = "No page could be opened for capture"


class CaptureEmpty(PageLiteError):
    kind = "capture_empty"
    default_message = "The capture returned no content"


class ResourceInlineFailure(PageLiteError):
    kind = "resource_inline_failure"

    def __init__(self, url: str, reason: str, status_code: int | None = None):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Could not inline stylesheet {url}: {reason}")


class PersistenceFailure(PageLiteError):
    kind = "persistence_failure"
    default_message = "Saving the page failed"

    def __init__(self, message: str | None = None, status_code: int | None = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class ConfigurationMissing(PageLiteError):
    kind = "configuration_missing"
    default_message = "Configure the server URL in settings before uploading"


class InvalidSettings(PageLiteError):
    kind = "invalid_settings"
    default_message = "The server URL is not valid"
