"""
Request and response envelopes for the Transmission RPC protocol.

Request:  {"method": str, "arguments": obj (omitted if None), "tag": int (omitted if 0)}
Response: {"arguments": obj, "result": str, "tag": int | null}

Requests are encoded incrementally with json.JSONEncoder.iterencode so the
transport can start writing before the whole payload is serialized.
"""

import json
import random
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from pydantic import BaseModel, ValidationError

from .exceptions import DecodingError, EncodingError


SUCCESS = "success"

# Largest integer a JSON number keeps exactly on any daemon
MAX_TAG = 2 ** 53 - 1

_encoder = json.JSONEncoder(ensure_ascii=False, allow_nan=False)


@dataclass
class ResponseEnvelope:
    arguments: Any
    result: str
    tag: Optional[int]


def new_tag(rng: random.Random) -> int:
    return rng.randint(1, MAX_TAG)


def _request(method: str, arguments: Any, tag: int) -> dict:
    payload = {"method": method}
    if arguments is not None:
        payload["arguments"] = arguments
    if tag:
        payload["tag"] = tag
    return payload


def iter_encode(method: str, arguments: Any = None, tag: int = 0) -> Iterator[bytes]:
    """Yield the request envelope as UTF-8 chunks, newline terminated."""
    try:
        for chunk in _encoder.iterencode(_request(method, arguments, tag)):
            yield chunk.encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodingError(f"request payload JSON marshalling failed: {e}") from e
    yield b"\n"


def encode(method: str, arguments: Any = None, tag: int = 0) -> bytes:
    return b"".join(iter_encode(method, arguments, tag))


def _decode_arguments(arguments: Any, result: Any) -> Any:
    if result is None:
        return arguments
    if isinstance(result, type) and issubclass(result, BaseModel):
        if arguments is None:
            return None
        try:
            return result.model_validate(arguments)
        except ValidationError as e:
            raise DecodingError(f"can't decode answer arguments into {result.__name__}: {e}") from e
    if isinstance(result, MutableMapping):
        if arguments is None:
            return result
        if not isinstance(arguments, dict):
            raise DecodingError(
                f"answer arguments is a {type(arguments).__name__}, expected an object"
            )
        result.update(arguments)
        return result
    raise DecodingError(f"unsupported result type: {type(result).__name__}")


def decode(data: bytes, result: Any = None) -> ResponseEnvelope:
    """
    Decode a response envelope.

    Args:
        data: Raw response body
        result: Where to decode the answer arguments. None returns them as
            parsed JSON, a mutable mapping is updated in place, a pydantic
            model class is validated into a new instance.

    Returns:
        ResponseEnvelope whose arguments is the populated result value

    Raises:
        DecodingError: If data is not a well-formed envelope
    """
    try:
        answer = json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodingError(f"can't unmarshall request answer body: {e}") from e

    if not isinstance(answer, dict):
        raise DecodingError("can't unmarshall request answer body: not a JSON object")

    status = answer.get("result", "")
    if not isinstance(status, str):
        raise DecodingError("answer 'result' field is not a string")

    tag = answer.get("tag")
    if tag is not None and (isinstance(tag, bool) or not isinstance(tag, int)):
        raise DecodingError("answer 'tag' field is not an integer")

    return ResponseEnvelope(
        arguments=_decode_arguments(answer.get("arguments"), result),
        result=status,
        tag=tag,
    )
