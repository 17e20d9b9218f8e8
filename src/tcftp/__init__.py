"""Two-channel file transfer (tcftp)

A client asks a server for a directory listing or a file over a control
connection; the server answers with a status literal and, on success, connects
back to the client to stream a length-prefixed payload over a data connection.

- request parsing and resource lookup are plain functions with no socket knowledge
- the data channel owns framing (``<len>\\n`` + bytes) in both directions
- server and client drive one request cycle each, blocking and single-threaded
"""

__all__ = []
