"""The ``mta`` protobuf schema and typed encode/decode helpers.

Message types are built from descriptors at import time, so no generated
``_pb2`` module is needed. The definitions mirror ``proto/mta.proto``, which
is what the peer compiles against; field numbers must stay in sync.
"""

from __future__ import annotations

from typing import Any

import structlog
from google.protobuf import descriptor_pb2, descriptor_pool, json_format, message_factory
from google.protobuf.message import DecodeError, Message

from mta_client.core.mta import BobMessages, BobSetup, MTAResult
from mta_client.errors import MalformedFrame

log = structlog.get_logger()

PACKAGE = "mta"

_F = descriptor_pb2.FieldDescriptorProto

# (message name, [(field name, number, type, repeated)])
_SCHEMA: list[tuple[str, list[tuple[str, int, int, bool]]]] = [
    ("CorrelationDelta", [
        ("delta", 1, _F.TYPE_UINT32, False),
    ]),
    ("BobSetup", [
        ("success", 1, _F.TYPE_BOOL, False),
        ("ot_messages", 2, _F.TYPE_BYTES, True),
        ("public_key", 3, _F.TYPE_BYTES, False),
        ("num_ot_instances", 4, _F.TYPE_UINT32, False),
    ]),
    ("AliceMessages", [
        ("masked_share", 1, _F.TYPE_UINT32, False),
        ("ot_choices", 2, _F.TYPE_BOOL, True),
        ("encrypted_shares", 3, _F.TYPE_BYTES, True),
    ]),
    ("BobMessages", [
        ("success", 1, _F.TYPE_BOOL, False),
        ("ot_responses", 2, _F.TYPE_BYTES, True),
        ("encrypted_result", 3, _F.TYPE_BYTES, False),
        ("correlation_check", 4, _F.TYPE_UINT32, False),
        ("masked_share", 5, _F.TYPE_UINT32, False),
    ]),
    ("MTAResult", [
        ("success", 1, _F.TYPE_BOOL, False),
        ("additive_share", 2, _F.TYPE_UINT32, False),
        ("error_message", 3, _F.TYPE_STRING, False),
    ]),
]


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto(
        name="mta.proto", package=PACKAGE, syntax="proto3",
    )
    for msg_name, fields in _SCHEMA:
        msg = fdp.message_type.add(name=msg_name)
        for field_name, number, field_type, repeated in fields:
            msg.field.add(
                name=field_name,
                number=number,
                type=field_type,
                label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
            )
    return fdp


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file().SerializeToString())

MESSAGE_TYPES: dict[str, type[Message]] = {
    name: message_factory.GetMessageClass(_pool.FindMessageTypeByName(f"{PACKAGE}.{name}"))
    for name, _ in _SCHEMA
}

CorrelationDeltaMessage = MESSAGE_TYPES["CorrelationDelta"]
BobSetupMessage = MESSAGE_TYPES["BobSetup"]
AliceMessagesMessage = MESSAGE_TYPES["AliceMessages"]
BobMessagesMessage = MESSAGE_TYPES["BobMessages"]
MTAResultMessage = MESSAGE_TYPES["MTAResult"]


def _parse(kind: str, data: bytes) -> Any:
    msg = MESSAGE_TYPES[kind]()
    try:
        msg.ParseFromString(bytes(data))
    except DecodeError as e:
        log.warning("schema_decode_failed", kind=kind, size=len(data), err=str(e))
        raise MalformedFrame(f"cannot decode {kind}: {e}") from e
    return msg


def validate_message(kind: str, payload: dict[str, Any]) -> str | None:
    """Check a dict payload against a schema type. Returns an error or None."""
    msg_type = MESSAGE_TYPES.get(kind)
    if msg_type is None:
        return f"unknown message type: {kind}"
    try:
        json_format.ParseDict(payload, msg_type())
    except json_format.ParseError as e:
        return str(e)
    return None


# ---------------------------------------------------------------------------
# Alice side
# ---------------------------------------------------------------------------


def encode_correlation_delta(delta: int) -> bytes:
    return CorrelationDeltaMessage(delta=delta).SerializeToString()


def decode_bob_setup(data: bytes) -> BobSetup:
    """Decode BobSetup and join its per-instance points into one buffer."""
    msg = _parse("BobSetup", data)
    return BobSetup(
        points=b"".join(msg.ot_messages),
        correlation_delta=0,
        success=msg.success,
        public_key=bytes(msg.public_key),
        num_ot_instances=msg.num_ot_instances,
    )


def encode_alice_messages(
    masked_share: int, ot_choices: list[bool], encrypted_shares: list[bytes],
) -> bytes:
    return AliceMessagesMessage(
        masked_share=masked_share,
        ot_choices=ot_choices,
        encrypted_shares=encrypted_shares,
    ).SerializeToString()


def decode_bob_messages(data: bytes) -> BobMessages:
    msg = _parse("BobMessages", data)
    return BobMessages(masked_share=msg.masked_share, success=msg.success)


def encode_mta_result(result: MTAResult, error_message: str = "") -> bytes:
    return MTAResultMessage(
        success=result.success,
        additive_share=result.additive_share,
        error_message=error_message,
    ).SerializeToString()


def decode_mta_result(data: bytes) -> MTAResult:
    msg = _parse("MTAResult", data)
    return MTAResult(additive_share=msg.additive_share, success=msg.success)


# ---------------------------------------------------------------------------
# Bob side (peer tooling and tests)
# ---------------------------------------------------------------------------


def decode_correlation_delta(data: bytes) -> int:
    return _parse("CorrelationDelta", data).delta


def encode_bob_setup(
    success: bool,
    ot_messages: list[bytes],
    public_key: bytes = b"",
    num_ot_instances: int | None = None,
) -> bytes:
    return BobSetupMessage(
        success=success,
        ot_messages=ot_messages,
        public_key=public_key,
        num_ot_instances=len(ot_messages) if num_ot_instances is None else num_ot_instances,
    ).SerializeToString()


def decode_alice_messages(data: bytes) -> Any:
    """Raw schema message (masked_share, ot_choices, encrypted_shares)."""
    return _parse("AliceMessages", data)


def encode_bob_messages(
    success: bool,
    masked_share: int = 0,
    correlation_check: int = 0,
    ot_responses: list[bytes] | None = None,
    encrypted_result: bytes = b"",
) -> bytes:
    return BobMessagesMessage(
        success=success,
        ot_responses=ot_responses or [],
        encrypted_result=encrypted_result,
        correlation_check=correlation_check,
        masked_share=masked_share,
    ).SerializeToString()
