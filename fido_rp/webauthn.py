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

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, EnumMeta, unique
from typing import Any, Mapping, Sequence

from .utils import _JsonDataObject, websafe_encode

"""
Data classes for the subset of the W3C WebAuthn structures
(https://www.w3.org/TR/webauthn/) exchanged between the relying party and the
platform ceremony.

All of these classes can be serialized to JSON-compatible dictionaries by passing
them to dict(), and deserialized by calling DataClass.from_dict(data):

    user = PublicKeyCredentialUserEntity(id=b"1234", name="Alice")
    data = dict(user)
    # data is now a JSON-compatible dictionary, json.dumps(data) will work
    user2 = PublicKeyCredentialUserEntity.from_dict(data)
    assert user == user2
"""


class _StringEnumMeta(EnumMeta):
    def __call__(cls, value, *args, **kwargs):
        try:
            return super().__call__(value, *args, **kwargs)
        except ValueError:
            return None


class _StringEnum(str, Enum, metaclass=_StringEnumMeta):
    """Enum of strings for WebAuthn types.

    Unrecognized values are treated as missing.
    """


@unique
class AuthenticatorTransport(_StringEnum):
    USB = "usb"
    NFC = "nfc"
    BLE = "ble"
    HYBRID = "hybrid"
    INTERNAL = "internal"


@unique
class PublicKeyCredentialType(_StringEnum):
    PUBLIC_KEY = "public-key"


@dataclass(eq=False, frozen=True, kw_only=True)
class PublicKeyCredentialRpEntity(_JsonDataObject):
    name: str
    id: str | None = None


@dataclass(eq=False, frozen=True, kw_only=True)
class PublicKeyCredentialUserEntity(_JsonDataObject):
    name: str
    id: bytes
    display_name: str | None = None


@dataclass(eq=False, frozen=True, kw_only=True)
class PublicKeyCredentialParameters(_JsonDataObject):
    type: PublicKeyCredentialType
    alg: int


@dataclass(eq=False, frozen=True, kw_only=True)
class PublicKeyCredentialDescriptor(_JsonDataObject):
    type: PublicKeyCredentialType
    id: bytes
    transports: Sequence[AuthenticatorTransport] | None = None

    def __post_init__(self):
        super().__post_init__()

        if self.transports is not None:
            # Unknown transports parse to None, and are dropped
            object.__setattr__(
                self, "transports", [t for t in self.transports if t is not None]
            )


@dataclass(eq=False, frozen=True, kw_only=True)
class PublicKeyCredentialCreationOptions(_JsonDataObject):
    rp: PublicKeyCredentialRpEntity
    user: PublicKeyCredentialUserEntity
    challenge: bytes
    pub_key_cred_params: Sequence[PublicKeyCredentialParameters]
    timeout: int | None = None
    exclude_credentials: Sequence[PublicKeyCredentialDescriptor] | None = None


@dataclass(eq=False, frozen=True, kw_only=True)
class PublicKeyCredentialRequestOptions(_JsonDataObject):
    challenge: bytes
    timeout: int | None = None
    rp_id: str | None = None
    allow_credentials: Sequence[PublicKeyCredentialDescriptor] | None = None


def _pop_credential_id(cls, data):
    # The id member duplicates rawId, it is checked and then dropped
    if not data or isinstance(data, cls) or "id" not in data:
        return data
    data = dict(data)
    credential_id = data.pop("id")
    raw_id = data.get("rawId")
    if isinstance(raw_id, (bytes, bytearray)):
        raw_id = websafe_encode(bytes(raw_id))
    if credential_id != raw_id:
        raise ValueError("id does not match rawId")
    return data


@dataclass(eq=False, frozen=True, kw_only=True)
class RegistrationResponse(_JsonDataObject):
    """
    The result of a successful platform create() call.

    Only raw_id is interpreted by the relying party. The authenticator response
    members (clientDataJSON, attestation data) are carried as an opaque mapping.
    """

    id: str = field(init=False)
    raw_id: bytes
    response: Mapping[str, Any] = field(default_factory=dict)
    type: PublicKeyCredentialType = PublicKeyCredentialType.PUBLIC_KEY

    def __post_init__(self):
        super().__post_init__()

        if not self.raw_id:
            raise ValueError("Credential rawId must not be empty")
        object.__setattr__(self, "id", websafe_encode(self.raw_id))

    @classmethod
    def from_dict(cls, data):
        return super().from_dict(_pop_credential_id(cls, data))


@dataclass(eq=False, frozen=True, kw_only=True)
class AuthenticationResponse(_JsonDataObject):
    """
    The result of a successful platform get() call.

    Only raw_id is interpreted by the relying party. The assertion members
    (clientDataJSON, authenticatorData, signature) are carried as an opaque
    mapping.
    """

    id: str = field(init=False)
    raw_id: bytes
    response: Mapping[str, Any] = field(default_factory=dict)
    user_handle: bytes | None = None
    type: PublicKeyCredentialType = PublicKeyCredentialType.PUBLIC_KEY

    def __post_init__(self):
        super().__post_init__()

        if not self.raw_id:
            raise ValueError("Credential rawId must not be empty")
        object.__setattr__(self, "id", websafe_encode(self.raw_id))

    @classmethod
    def from_dict(cls, data):
        return super().from_dict(_pop_credential_id(cls, data))
