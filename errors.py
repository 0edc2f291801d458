"""
Error types for the Blogify API

Each error carries the HTTP status the exception handler in main.py answers with.
"""


class BlogifyError(Exception):
    status_code = 500

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)
        self.detail = detail


class InvalidRequest(BlogifyError):
    status_code = 400


class Unauthorized(BlogifyError):
    status_code = 401


class Forbidden(BlogifyError):
    status_code = 403


class NotFound(BlogifyError):
    status_code = 404


class StoreError(BlogifyError):
    """Underlying data-store failure. The detail never reaches the caller."""
    status_code = 500


class MediaError(BlogifyError):
    status_code = 502
