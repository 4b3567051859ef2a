"""Shared constants, codec registry and file/stream transfer message types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_RPC_PATH = "/_rpcx_"
AUTH_KEY = "__AUTH"
SERVER_ADDRESS = "__ServerAddress"
SERVER_TIMEOUT = "__ServerTimeout"
SEND_FILE_SERVICE_NAME = "_filetransfer"
STREAM_SERVICE_NAME = "_streamservice"
CONTEXT_TAGS_LOCK = "_tagsLock"
IS_SHARE_CONTEXT = "_isShareContext"

TRACE = False

CODECS: dict[int, Any] = {}


@dataclass(frozen=True)
class _ContextKey:
    name: str


REQ_META_DATA_KEY = _ContextKey("__req_metadata")
RES_META_DATA_KEY = _ContextKey("__res_metadata")


def register_codec(serialize_type: int, codec: Any) -> None:
    """Register (or replace) the codec used for a serialize type."""
    CODECS[serialize_type] = codec


@dataclass
class FileTransferArgs:
    file_name: str = ""
    file_size: int = 0
    meta: dict[str, str] = field(default_factory=dict)


@dataclass
class FileTransferReply:
    token: bytes = b""
    addr: str = ""


@dataclass
class DownloadFileArgs:
    file_name: str = ""
    meta: dict[str, str] = field(default_factory=dict)


@dataclass
class StreamServiceArgs:
    meta: dict[str, str] = field(default_factory=dict)


@dataclass
class StreamServiceReply:
    token: bytes = b""
    addr: str = ""