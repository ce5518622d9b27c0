"""
PDF gateway error taxonomy.

  AuthError            credential exchange failed
  RemoteOperationError network error or non-2xx from the remote service
  RemoteProtocolError  remote answered 2xx but a required field is missing
  LocalFallbackError   the in-process substitute failed
  SplitError           a page copy failed during a local split
  CompositeFailure     remote and local both failed; the only error a caller
                       sees for operations that have a fallback
"""

from __future__ import annotations


class PdfGatewayError(Exception):
    """Base class for every error raised by the gateway."""


class AuthError(PdfGatewayError):
    def __init__(self, kind: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{kind} auth failed: {message}")
        self.kind   = kind
        self.status = status


class RemoteOperationError(PdfGatewayError):
    def __init__(
        self,
        operation: str,
        message:   str | None = None,
        status:    int | None = None,
        transient: bool = False,
    ) -> None:
        super().__init__(message or f"Remote {operation} failed")
        self.operation = operation
        self.status    = status
        self.transient = transient   # worth another attempt before falling back


class RemoteProtocolError(RemoteOperationError):
    pass


class LocalFallbackError(PdfGatewayError):
    def __init__(self, operation: str, message: str) -> None:
        super().__init__(message)
        self.operation = operation


class SplitError(LocalFallbackError):
    def __init__(self, message: str) -> None:
        super().__init__("split", message)


class CompositeFailure(PdfGatewayError):
    def __init__(self, operation: str, remote_error: Exception, local_error: Exception) -> None:
        super().__init__(
            f"{operation} failed: remote: {remote_error}; local fallback: {local_error}"
        )
        self.operation    = operation
        self.remote_error = remote_error
        self.local_error  = local_error
