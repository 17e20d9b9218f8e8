from __future__ import annotations

from .constants import RESP_DIRECTORY_ERROR, RESP_FILE_NOT_FOUND, RESP_INVALID_COMMAND


class TcftpError(Exception):
    pass


class UsageError(TcftpError):
    pass


class ConnectionFailed(TcftpError):
    """bind, listen, accept or connect could not be completed."""


class TransferError(TcftpError):
    """The data channel ended early or carried a malformed header."""


class ProtocolError(TcftpError):
    """A request failure that is reported to the peer as a status literal."""

    response: bytes = b""


class InvalidCommand(ProtocolError):
    response = RESP_INVALID_COMMAND


class DirectoryReadFailed(ProtocolError):
    response = RESP_DIRECTORY_ERROR


class FileNotFound(ProtocolError):
    response = RESP_FILE_NOT_FOUND


class ServerRefused(ProtocolError):
    """The server answered the request with something other than OK."""

    def __init__(self, text: str):
        super().__init__(text)
        self.text = text
        self.response = text.encode("utf-8", "replace")
