"""
Namada REST Gateway - Error Taxonomy
Every failure path in the gateway raises one of these; the Flask layer
renders all of them as {"error": <message>}.
"""

from enum import Enum


class ErrorKind(Enum):
    """Failure source"""
    DECODE = "decode"
    UPSTREAM = "upstream"
    NOT_FOUND = "not_found"
    EXECUTION = "execution"


class GatewayError(Exception):
    """Base class for errors surfaced to HTTP clients"""

    kind: ErrorKind = ErrorKind.UPSTREAM
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        return {"error": self.message}


class DecodeError(GatewayError):
    """Malformed address literal"""

    kind = ErrorKind.DECODE
    status_code = 400


class UpstreamError(GatewayError):
    """The chain node call failed or returned an error"""

    kind = ErrorKind.UPSTREAM
    status_code = 502


class NotFoundError(GatewayError):
    """Requested chain object does not exist"""

    kind = ErrorKind.NOT_FOUND
    status_code = 404


class ExecutionError(GatewayError):
    """The isolated worker running an RPC call did not complete"""

    kind = ErrorKind.EXECUTION
    status_code = 500
