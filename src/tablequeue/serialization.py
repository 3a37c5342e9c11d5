"""
Payload codecs.

A codec turns an arbitrary Python value into storage-safe text and back.
The queue engine takes one codec at construction and uses it for every
element it writes or materializes.
"""

import base64
import json
import pickle
from typing import Any, Callable, Optional, Union

from .errors import ConfigurationError

# Ceiling on the encoded payload, in bytes.
MAX_PAYLOAD_SIZE = 65535


class PayloadCodec:
    """Base class for payload codecs."""

    name = "base"

    def encode(self, data: Any) -> str:
        raise NotImplementedError

    def decode(self, text: str) -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class PickleCodec(PayloadCodec):
    """
    Pickle the value and wrap it in base64 so it fits a TEXT column.

    Any picklable structure round-trips. Only decode payloads written by
    trusted producers: unpickling executes code chosen by the writer.
    """

    name = "pickle"

    def __init__(self, protocol: int = pickle.HIGHEST_PROTOCOL):
        self.protocol = protocol

    def encode(self, data: Any) -> str:
        return base64.b64encode(pickle.dumps(data, protocol=self.protocol)).decode('ascii')

    def decode(self, text: str) -> Any:
        return pickle.loads(base64.b64decode(text.encode('ascii'), validate=True))


class JsonCodec(PayloadCodec):
    """JSON text payloads, readable by consumers written in other languages."""

    name = "json"

    def __init__(self, sort_keys: bool = True):
        self.sort_keys = sort_keys

    def encode(self, data: Any) -> str:
        return json.dumps(data, sort_keys=self.sort_keys, separators=(',', ':'))

    def decode(self, text: str) -> Any:
        return json.loads(text)


class FunctionCodec(PayloadCodec):
    """
    Codec built from an explicit encode/decode function pair.

    encode must return str; wrap binary encoders (pickle.dumps) in base64.
    """

    name = "function"

    def __init__(self, encode: Callable[[Any], str], decode: Callable[[str], Any]):
        if not callable(encode) or not callable(decode):
            raise ConfigurationError("FunctionCodec needs callable encode and decode functions")
        self._encode = encode
        self._decode = decode

    def encode(self, data: Any) -> str:
        return self._encode(data)

    def decode(self, text: str) -> Any:
        return self._decode(text)


_CODECS = {
    'pickle': PickleCodec,
    'json': JsonCodec,
}


def get_codec(codec: Optional[Union[str, PayloadCodec]] = None) -> PayloadCodec:
    """
    Resolve a codec specification.

    Args:
        codec: None for the default, a registered name ('pickle', 'json')
            or a PayloadCodec instance

    Returns:
        PayloadCodec instance

    Raises:
        ConfigurationError: If the specification is unknown
    """
    if codec is None:
        return PickleCodec()
    if isinstance(codec, PayloadCodec):
        return codec
    if isinstance(codec, str) and codec.lower() in _CODECS:
        return _CODECS[codec.lower()]()
    raise ConfigurationError(
        f"Unknown serializer {codec!r}; expected one of {sorted(_CODECS)} or a PayloadCodec"
    )


def encoded_size(text: str) -> int:
    """Size in bytes of an encoded payload as the store will hold it."""
    return len(text.encode('utf-8'))
