from __future__ import annotations

FLAG_LIST = "-l"
FLAG_GET = "-g"

RESP_OK = b"OK"
RESP_INVALID_COMMAND = b"INVALID COMMAND"
RESP_DIRECTORY_ERROR = b"ERROR READING DIRECTORY"
RESP_FILE_NOT_FOUND = b"FILE NOT FOUND"

ACK_RECEIPT = RESP_OK

HEADER_TERMINATOR = b"\n"
EMPTY_LISTING = b" "

CONTROL_BUFSIZE = 1024
DATA_BUFSIZE = 65536
MAX_HEADER_LEN = 32  # digits + newline, anything longer is garbage

MIN_PORT = 1024
MAX_PORT = 65535
RECOMMENDED_MIN_PORT = 50000

DEFAULT_BACKLOG = 1
DEFAULT_DATA_CONNECT_DELAY = 0.0
