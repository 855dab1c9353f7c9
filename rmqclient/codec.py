"""Remoting command model and its two wire codecs (JSON and binary)."""

from __future__ import annotations

import itertools
import json
import struct
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import BinaryIO, Mapping, Optional, Protocol

RPC_TYPE = 0
RPC_ONEWAY = 1
RESPONSE_TYPE = 1
DEFAULT_FLAG = 0
DEFAULT_VERSION = 317

# code(2) + language(1) + version(2) + opaque(4) + flag(4) + remark len(4) + ext len(4)
HEADER_FIXED_LENGTH = 21

_INT32_MIN = -(2**31)
_INT32_SPAN = 2**32


class CodecError(ValueError):
    """Raised when a command cannot be encoded or decoded."""


class LanguageCode(IntEnum):
    """Language of the peer that produced a command."""

    JAVA = 0
    GO = 9
    UNKNOWN = 127

    @classmethod
    def _missing_(cls, value: object) -> "LanguageCode":
        return cls.UNKNOWN

    @classmethod
    def from_json(cls, value: object) -> "LanguageCode":
        if value == "JAVA":
            return cls.JAVA
        if value == "GO":
            return cls.GO
        return cls.UNKNOWN

    def __str__(self) -> str:
        if self is LanguageCode.JAVA:
            return "JAVA"
        if self is LanguageCode.GO:
            return "GO"
        return "unknown"


class CodecType(IntEnum):
    """Serialization used for the command header."""

    JSON = 0
    ROCKETMQ = 1


class CustomHeader(Protocol):
    def encode(self) -> Mapping[str, str]: ...


@dataclass
class RemotingCommand:
    """A single request or response exchanged with a broker or name server."""

    code: int
    language: LanguageCode = LanguageCode.GO
    version: int = DEFAULT_VERSION
    opaque: int = 0
    flag: int = 0
    remark: str = ""
    ext_fields: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def is_response_type(self) -> bool:
        return self.flag & RESPONSE_TYPE == RESPONSE_TYPE

    def mark_response_type(self) -> None:
        self.flag |= RESPONSE_TYPE

    def write_to(self, stream: BinaryIO, codec: CodecType = CodecType.JSON) -> None:
        """Write the full frame, length prefix included, to a binary stream."""
        stream.write(encode(self, codec))

    def __str__(self) -> str:
        return (
            f"Code: {self.code}, opaque: {self.opaque}, "
            f"Remark: {self.remark}, ExtFields: {self.ext_fields}"
        )


_opaque_lock = threading.Lock()
_opaque_counter = itertools.count(1)


def _next_opaque() -> int:
    with _opaque_lock:
        value = next(_opaque_counter)
    return (value - _INT32_MIN) % _INT32_SPAN + _INT32_MIN


def new_remoting_command(
    code: int, header: Optional[CustomHeader] = None, body: Optional[bytes] = None
) -> RemotingCommand:
    """Create a request command with a fresh opaque identifier."""
    ext_fields = dict(header.encode()) if header is not None else {}
    return RemotingCommand(
        code=code,
        opaque=_next_opaque(),
        ext_fields=ext_fields,
        body=bytes(body) if body is not None else b"",
    )


def _pack(fmt: str, *values: int) -> bytes:
    try:
        return struct.pack(fmt, *values)
    except struct.error as exc:
        raise CodecError(str(exc)) from exc


def _encode_json_header(command: RemotingCommand) -> bytes:
    document = {
        "code": command.code,
        "language": "GO",
        "version": command.version,
        "opaque": command.opaque,
        "flag": command.flag,
        "remark": command.remark,
        "extFields": command.ext_fields,
    }
    return json.dumps(document, separators=(",", ":")).encode("utf-8")


def _decode_json_header(data: bytes) -> RemotingCommand:
    try:
        document = json.loads(bytes(data).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CodecError(f"invalid JSON header: {exc}") from exc
    if not isinstance(document, dict):
        raise CodecError("JSON header is not an object")
    ext = document.get("extFields") or {}
    if not isinstance(ext, dict):
        raise CodecError("extFields is not an object")
    try:
        return RemotingCommand(
            code=int(document.get("code", 0)),
            language=LanguageCode.from_json(document.get("language")),
            version=int(document.get("version", 0)),
            opaque=int(document.get("opaque", 0)),
            flag=int(document.get("flag", 0)),
            remark=str(document.get("remark") or ""),
            ext_fields={str(k): str(v) for k, v in ext.items()},
        )
    except (TypeError, ValueError) as exc:
        raise CodecError(f"invalid JSON header field: {exc}") from exc


def _encode_maps(maps: Mapping[str, str]) -> bytes:
    parts = []
    for key, value in maps.items():
        key_bytes = key.encode("utf-8")
        value_bytes = value.encode("utf-8")
        parts.append(_pack(">h", len(key_bytes)))
        parts.append(key_bytes)
        parts.append(_pack(">i", len(value_bytes)))
        parts.append(value_bytes)
    return b"".join(parts)


def _encode_rmq_header(command: RemotingCommand) -> bytes:
    ext_bytes = _encode_maps(command.ext_fields)
    remark = command.remark.encode("utf-8")
    return b"".join(
        (
            _pack(">hBhii", command.code, LanguageCode.GO, command.version,
                  command.opaque, command.flag),
            _pack(">i", len(remark)),
            remark,
            _pack(">i", len(ext_bytes)),
            ext_bytes,
        )
    )


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = memoryview(bytes(data))
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def take(self, size: int) -> bytes:
        if size < 0 or size > self.remaining:
            raise CodecError(
                f"unexpected end of data: need {size} bytes, have {self.remaining}"
            )
        chunk = self._data[self._pos:self._pos + size].tobytes()
        self._pos += size
        return chunk

    def unpack(self, fmt: str) -> tuple:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))


def _decode_rmq_header(data: bytes) -> RemotingCommand:
    reader = _Reader(data)
    code, language, version, opaque, flag = reader.unpack(">hBhii")
    command = RemotingCommand(
        code=code,
        language=LanguageCode(language),
        version=version,
        opaque=opaque,
        flag=flag,
    )
    (remark_len,) = reader.unpack(">i")
    if remark_len > 0:
        command.remark = reader.take(remark_len).decode("utf-8", errors="replace")
    (ext_len,) = reader.unpack(">i")
    if ext_len > 0:
        ext_reader = _Reader(reader.take(ext_len))
        while ext_reader.remaining > 0:
            (key_len,) = ext_reader.unpack(">h")
            key = ext_reader.take(key_len).decode("utf-8", errors="replace")
            (value_len,) = ext_reader.unpack(">i")
            value = ext_reader.take(value_len).decode("utf-8", errors="replace")
            command.ext_fields[key] = value
    return command


def encode_header(command: RemotingCommand, codec: CodecType = CodecType.JSON) -> bytes:
    """Serialize the header part of a command."""
    if codec is CodecType.ROCKETMQ:
        return _encode_rmq_header(command)
    return _encode_json_header(command)


def decode_header(data: bytes, codec: CodecType = CodecType.JSON) -> RemotingCommand:
    """Parse a header produced by :func:`encode_header`."""
    if codec is CodecType.ROCKETMQ:
        return _decode_rmq_header(data)
    return _decode_json_header(data)


def _mark_protocol_type(header_length: int, codec: CodecType) -> bytes:
    return bytes(
        (
            int(codec),
            (header_length >> 16) & 0xFF,
            (header_length >> 8) & 0xFF,
            header_length & 0xFF,
        )
    )


def encode(command: RemotingCommand, codec: CodecType = CodecType.JSON) -> bytes:
    """Build a full frame: total length, header length with codec, header, body.

    Frame layout: frame_size (4) | header_length (4) | header | body.
    """
    header = encode_header(command, codec)
    frame_size = 4 + len(header) + len(command.body)
    return b"".join(
        (
            _pack(">i", frame_size),
            _mark_protocol_type(len(header), codec),
            header,
            command.body,
        )
    )


def decode(data: bytes) -> RemotingCommand:
    """Decode a frame whose leading total-length field was already consumed."""
    reader = _Reader(data)
    (ori_header_len,) = reader.unpack(">I")
    header_length = ori_header_len & 0xFFFFFF
    header_data = reader.take(header_length)
    codec_value = (ori_header_len >> 24) & 0xFF
    try:
        codec = CodecType(codec_value)
    except ValueError:
        raise CodecError(f"unknown codec type: {codec_value}") from None
    command = decode_header(header_data, codec)
    body_length = len(data) - 4 - header_length
    if body_length > 0:
        command.body = reader.take(body_length)
    return command


class RPCHook(ABC):
    """Hook invoked around each remote call."""

    @abstractmethod
    def do_before_request(self, addr: str, command: RemotingCommand) -> None:
        """Called before ``command`` is sent to ``addr``."""

    @abstractmethod
    def do_after_response(self, addr: str, command: RemotingCommand) -> None:
        """Called after a response ``command`` arrived from ``addr``."""