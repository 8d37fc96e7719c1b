# Copyright (c) 2018 Yubico AB
# All rights reserved.
#
#   Redistribution and use in source and binary forms, with or
#   without modification, are permitted provided that the following
#   conditions are met:
#
#    1. Redistributions of source code must retain the above copyright
#       notice, this list of conditions and the following disclaimer.
#    2. Redistributions in binary form must reproduce the above
#       copyright notice, this list of conditions and the following
#       disclaimer in the documentation and/or other materials provided
#       with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS
# "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
# LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS
# FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE
# COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING,
# BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES;
# LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT
# LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN
# ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

"""Various utility functions.

This module contains the encoding helpers and the JSON mapping base class used
throughout the rest of the project.
"""

from __future__ import annotations

import re
import types
from base64 import urlsafe_b64decode, urlsafe_b64encode
from dataclasses import Field, fields
from enum import Enum
from typing import Any, Mapping, Sequence, Union, get_args, get_origin, get_type_hints

from cryptography.hazmat.primitives import hashes

from .errors import InvalidEncoding

__all__ = [
    "websafe_encode",
    "websafe_decode",
    "hex_encode",
    "hex_decode",
    "sha256",
]


LOG_LEVEL_TRAFFIC = 5

_HEX_PATTERN = re.compile(r"[0-9a-fA-F]*")


def sha256(data: bytes) -> bytes:
    """Produces a SHA256 hash of the input.

    :param data: The input data to hash.
    :return: The resulting hash.
    """
    h = hashes.Hash(hashes.SHA256())
    h.update(data)
    return h.finalize()


def websafe_decode(data: str) -> bytes:
    """Decodes a websafe-base64 encoded string.
    See: "Base 64 Encoding with URL and Filename Safe Alphabet" from Section 5
    in RFC4648 without padding.

    :param data: The input to decode.
    :return: The decoded bytes.
    """
    raw = data.encode("ascii")
    raw += b"=" * (-len(raw) % 4)
    return urlsafe_b64decode(raw)


def websafe_encode(data: bytes) -> str:
    """Encodes a byte string into websafe-base64 encoding.

    :param data: The input to encode.
    :return: The encoded string.
    """
    return urlsafe_b64encode(data).replace(b"=", b"").decode("ascii")


def hex_encode(data: bytes) -> str:
    """Encodes a byte string as lowercase hex, the form used for stored IDs.

    :param data: The input to encode.
    :return: The encoded string.
    """
    return bytes(data).hex()


def hex_decode(data: str) -> bytes:
    """Decodes a hex string, as produced by hex_encode.

    Unlike bytes.fromhex, whitespace is not accepted.

    :param data: The hex string to decode.
    :return: The decoded bytes.
    :raises InvalidEncoding: If the string has an odd length or contains a
        character which is not a hex digit.
    """
    if not isinstance(data, str):
        raise InvalidEncoding(f"Hex data must be a str, got {type(data).__name__}")
    if len(data) % 2:
        raise InvalidEncoding(f"Odd-length hex string ({len(data)} characters)")
    if not _HEX_PATTERN.fullmatch(data):
        raise InvalidEncoding("Non-hex character in hex string")
    return bytes.fromhex(data)


def _unwrap_optional(t):
    if get_origin(t) in (Union, types.UnionType):
        args = [a for a in get_args(t) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return t


def _to_json(value):
    if isinstance(value, bytes):
        return websafe_encode(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {k: _to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(v) for v in value]
    return value


class _JsonDataObject(Mapping[str, Any]):
    """A data class with members also accessible as a JSON-serializable Mapping.

    Keys are the camelCase field names, bytes are websafe-base64 encoded and
    fields set to None are left out, so that json.dumps(dict(obj)) works.
    from_dict parses such a mapping back, guided by the field type hints.
    """

    def __post_init__(self):
        hints = get_type_hints(type(self))
        for f in fields(self):  # type: ignore
            if not f.init:
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            try:
                value = self._parse_value(hints[f.name], value)
            except (TypeError, KeyError, ValueError) as e:
                raise ValueError(
                    f"Error parsing field {f.name} for {self.__class__.__name__}"
                ) from e
            object.__setattr__(self, f.name, value)

    @classmethod
    def _get_field_key(cls, field: Field) -> str:
        name = field.metadata.get("name")
        if name:
            return name
        parts = field.name.split("_")
        return parts[0] + "".join(p.title() for p in parts[1:])

    def _members(self) -> dict[str, Any]:
        members = {}
        for f in fields(self):  # type: ignore
            value = getattr(self, f.name)
            if value is not None:
                members[self._get_field_key(f)] = value
        return members

    def __iter__(self):
        return iter(self._members())

    def __len__(self):
        return len(self._members())

    def __getitem__(self, key):
        return _to_json(self._members()[key])

    @classmethod
    def _parse_value(cls, t, value):
        t = _unwrap_optional(t)
        if t is Any:
            return value

        # bytes are encoded as websafe_b64 strings
        if t is bytes:
            if isinstance(value, str):
                return websafe_decode(value)
            if isinstance(value, (bytes, bytearray, memoryview)):
                return bytes(value)
            raise TypeError(f"Expected bytes or str, got {type(value).__name__}")

        origin = get_origin(t)
        if origin is not None:
            if issubclass(origin, Mapping):
                if not isinstance(value, Mapping):
                    raise TypeError(f"Expected a Mapping, got {type(value).__name__}")
                return dict(value)
            if issubclass(origin, Sequence):
                if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
                    raise TypeError(f"Expected a list, got {type(value).__name__}")
                (item_type,) = get_args(t)
                return [cls._parse_value(item_type, v) for v in value]

        if isinstance(t, type):
            if isinstance(value, t):
                return value
            from_dict = getattr(t, "from_dict", None)
            if from_dict:
                return from_dict(value)
            return t(value)

        raise ValueError(f"Unparseable value of type {type(value)} for {t}")

    @classmethod
    def from_dict(cls, data):
        if data is None:
            return None
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            raise TypeError(
                f"{cls.__name__}.from_dict called with non-Mapping data of type "
                f"{type(data)}"
            )

        # Values are parsed by __post_init__
        kwargs = {}
        for f in fields(cls):  # type: ignore
            if not f.init:
                continue
            value = data.get(cls._get_field_key(f))
            if value is not None:
                kwargs[f.name] = value
        return cls(**kwargs)
