"""Byte representation of scene records and per-owner scene indexes.

Both are UTF-8 JSON. Field names on the wire (``userId``, ``encryptedData``,
``created``...) match what earlier deployments already wrote to storage.
"""
import base64
import binascii
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence


class DecodeError(ValueError):
    """Stored bytes could not be turned back into a record or index."""


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode()

def b64d(s: str) -> bytes:
    return base64.b64decode(s, validate=True)


@dataclass(frozen=True)
class SceneMetadata:
    """Public listing view of a scene. Holds no ciphertext or key material."""

    id: str
    name: str
    created_at: int
    modified_at: int
    thumbnail: Optional[str] = None
    element_count: Optional[int] = None
    file_count: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
            "modifiedAt": self.modified_at,
        }
        for key, value in _optional_wire_fields(self).items():
            out[key] = value
        return out


@dataclass(frozen=True)
class SceneRecord:
    """Full persisted scene. ``ciphertext`` and ``key_reference`` stay out of repr."""

    id: str
    owner_id: str
    name: str
    ciphertext: bytes = field(repr=False)
    key_reference: str = field(repr=False)
    created_at: int
    modified_at: int
    thumbnail: Optional[str] = None
    element_count: Optional[int] = None
    file_count: Optional[int] = None

    def metadata(self) -> SceneMetadata:
        return SceneMetadata(
            id=self.id,
            name=self.name,
            created_at=self.created_at,
            modified_at=self.modified_at,
            thumbnail=self.thumbnail,
            element_count=self.element_count,
            file_count=self.file_count,
        )


def _optional_wire_fields(item) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if item.thumbnail is not None:
        out["thumbnail"] = item.thumbnail
    if item.element_count is not None:
        out["elementCount"] = item.element_count
    if item.file_count is not None:
        out["fileCount"] = item.file_count
    return out


# ---------------------------
# ENCODE
# ---------------------------

def encode_record(record: SceneRecord) -> bytes:
    payload = {
        "id": record.id,
        "userId": record.owner_id,
        "name": record.name,
        "encryptedData": b64e(record.ciphertext),
        "encryptionKey": record.key_reference,
        "created": record.created_at,
        "modified": record.modified_at,
    }
    payload.update(_optional_wire_fields(record))
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")

def encode_index(entries: Sequence[SceneMetadata]) -> bytes:
    payload = []
    for meta in entries:
        item = {
            "id": meta.id,
            "name": meta.name,
            "created": meta.created_at,
            "modified": meta.modified_at,
        }
        item.update(_optional_wire_fields(meta))
        payload.append(item)
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


# ---------------------------
# DECODE
# ---------------------------

def _load_json(raw) -> Any:
    if isinstance(raw, (bytes, bytearray, memoryview)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("payload is not valid UTF-8") from exc
    if not isinstance(raw, str):
        raise DecodeError(f"unsupported payload type {type(raw).__name__}")
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise DecodeError("payload is not valid JSON") from exc

def _str(obj: Dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"'{key}' must be a string")
    return value

def _int(obj: Dict[str, Any], key: str) -> int:
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"'{key}' must be an integer timestamp")
    return value

def _optionals(obj: Dict[str, Any]) -> Dict[str, Any]:
    thumbnail = obj.get("thumbnail")
    element_count = obj.get("elementCount")
    file_count = obj.get("fileCount")
    if thumbnail is not None and not isinstance(thumbnail, str):
        raise DecodeError("'thumbnail' must be a string")
    for key, value in (("elementCount", element_count), ("fileCount", file_count)):
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise DecodeError(f"'{key}' must be an integer")
    return {"thumbnail": thumbnail, "element_count": element_count, "file_count": file_count}

def _ciphertext(value: Any) -> bytes:
    # base64 text, or the {"type":"Buffer","data":[...]} shape JSON.stringify gives a Node Buffer
    if isinstance(value, dict) and value.get("type") == "Buffer":
        value = value.get("data")
    if isinstance(value, str):
        try:
            return b64d(value)
        except (binascii.Error, ValueError) as exc:
            raise DecodeError("'encryptedData' is not valid base64") from exc
    if isinstance(value, list):
        try:
            return bytes(value)
        except (TypeError, ValueError) as exc:
            raise DecodeError("'encryptedData' byte list is malformed") from exc
    raise DecodeError("'encryptedData' is missing or malformed")

def decode_record(raw) -> SceneRecord:
    obj = _load_json(raw)
    if not isinstance(obj, dict):
        raise DecodeError("scene record must be a JSON object")
    return SceneRecord(
        id=_str(obj, "id"),
        owner_id=_str(obj, "userId"),
        name=_str(obj, "name"),
        ciphertext=_ciphertext(obj.get("encryptedData")),
        key_reference=_str(obj, "encryptionKey"),
        created_at=_int(obj, "created"),
        modified_at=_int(obj, "modified"),
        **_optionals(obj),
    )

def decode_index(raw) -> List[SceneMetadata]:
    obj = _load_json(raw)
    if not isinstance(obj, list):
        raise DecodeError("scene index must be a JSON array")
    entries = []
    for item in obj:
        if not isinstance(item, dict):
            raise DecodeError("scene index entries must be objects")
        entries.append(SceneMetadata(
            id=_str(item, "id"),
            name=_str(item, "name"),
            created_at=_int(item, "created"),
            modified_at=_int(item, "modified"),
            **_optionals(item),
        ))
    return entries
