# errors.py
"""Error taxonomy shared by the window and analytics paths.

``InvalidInput`` and ``CredentialUnavailable`` are raised before any upstream
call. Everything that goes wrong while talking to the upstream service is an
``UpstreamFailure``; ``Unauthorized`` is the one subclass that also changes
process-wide state (the credential is invalidated by the window path).
"""

from typing import Optional


class ServiceError(Exception):
    """Base class for errors surfaced to HTTP clients."""


class InvalidInput(ServiceError):
    """Bad route parameter, query parameter or statistics input."""


class CredentialUnavailable(ServiceError):
    """No usable access credential is configured."""


class UpstreamFailure(ServiceError):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class UpstreamTimeout(UpstreamFailure):
    pass


class Unauthorized(UpstreamFailure):
    def __init__(self, message: str = "Upstream rejected the access credential"):
        super().__init__(message, status=401)


class UpstreamHTTPError(UpstreamFailure):
    pass


class UpstreamDecodeError(UpstreamFailure):
    """Upstream answered, but the payload does not match the expected shape."""
