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

import abc
import json
import logging
import os
import struct
from dataclasses import dataclass
from typing import Any, Mapping

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .context import rp_id_from_origin
from .errors import CeremonyError
from .utils import sha256, websafe_encode
from .webauthn import (
    AuthenticationResponse,
    PublicKeyCredentialCreationOptions,
    PublicKeyCredentialRequestOptions,
    RegistrationResponse,
)

logger = logging.getLogger(__name__)


ES256 = -7

_FLAG_UP = 0x01
_FLAG_UV = 0x04


class WebAuthnPlatform(abc.ABC):
    """The platform credential API, performing the WebAuthn ceremonies.

    Implementations should raise CeremonyError when the ceremony is rejected or
    cancelled.
    """

    @abc.abstractmethod
    async def create(
        self, options: PublicKeyCredentialCreationOptions
    ) -> RegistrationResponse | Mapping[str, Any]:
        """Creates a credential.

        :param options: PublicKeyCredentialCreationOptions data.
        :return: The new credential, as a RegistrationResponse or its JSON form.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def get(
        self, options: PublicKeyCredentialRequestOptions
    ) -> AuthenticationResponse | Mapping[str, Any]:
        """Gets an assertion.

        :param options: PublicKeyCredentialRequestOptions data.
        :return: The assertion, as an AuthenticationResponse or its JSON form.
        """
        raise NotImplementedError()


@dataclass
class _SoftwareCredential:
    rp_id: str
    private_key: ec.EllipticCurvePrivateKey
    user_handle: bytes | None
    counter: int = 0


class SoftwarePlatform(WebAuthnPlatform):
    """WebAuthnPlatform using ES256 keys held in memory.

    Note: do not use in production, keys are not protected in any way. The
    timeout of the options is not enforced.

    :param origin: The origin reported in the client data.
    :param user_present: Set to False to have the user cancel every ceremony.
    """

    def __init__(self, origin: str, user_present: bool = True):
        self.origin = origin
        self.user_present = user_present
        self._credentials: dict[bytes, _SoftwareCredential] = {}

    @property
    def credential_ids(self) -> list[bytes]:
        """The IDs of all credentials created by this platform."""
        return list(self._credentials)

    def _check_user_present(self) -> None:
        if not self.user_present:
            raise CeremonyError.ERR.NOT_ALLOWED("Cancelled by the user")

    def _client_data(self, type: str, challenge: bytes) -> bytes:
        return json.dumps(
            {
                "type": type,
                "challenge": websafe_encode(challenge),
                "origin": self.origin,
                "crossOrigin": False,
            },
            separators=(",", ":"),
        ).encode()

    @staticmethod
    def _auth_data(rp_id: str, flags: int, counter: int) -> bytes:
        return sha256(rp_id.encode("utf8")) + struct.pack(">BI", flags, counter)

    async def create(self, options):
        options = PublicKeyCredentialCreationOptions.from_dict(options)
        self._check_user_present()

        if ES256 not in [p.alg for p in options.pub_key_cred_params]:
            raise CeremonyError.ERR.CONFIGURATION_UNSUPPORTED("ES256 not requested")

        rp_id = options.rp.id or rp_id_from_origin(self.origin)
        for descriptor in options.exclude_credentials or []:
            existing = self._credentials.get(descriptor.id)
            if existing and existing.rp_id == rp_id:
                raise CeremonyError.ERR.DEVICE_INELIGIBLE("Credential excluded")

        credential_id = os.urandom(32)
        private_key = ec.generate_private_key(ec.SECP256R1())
        self._credentials[credential_id] = _SoftwareCredential(
            rp_id, private_key, options.user.id
        )
        logger.debug(f"Created software credential {credential_id.hex()}")

        return RegistrationResponse(
            raw_id=credential_id,
            response={
                "clientDataJSON": self._client_data(
                    "webauthn.create", options.challenge
                ),
                "authenticatorData": self._auth_data(rp_id, _FLAG_UP | _FLAG_UV, 0),
                "publicKey": private_key.public_key().public_bytes(
                    serialization.Encoding.DER,
                    serialization.PublicFormat.SubjectPublicKeyInfo,
                ),
                "publicKeyAlgorithm": ES256,
            },
        )

    async def get(self, options):
        options = PublicKeyCredentialRequestOptions.from_dict(options)
        self._check_user_present()

        rp_id = options.rp_id or rp_id_from_origin(self.origin)
        if options.allow_credentials:
            candidates = [d.id for d in options.allow_credentials]
        else:
            candidates = list(self._credentials)
        for credential_id in candidates:
            credential = self._credentials.get(credential_id)
            if credential and credential.rp_id == rp_id:
                break
        else:
            raise CeremonyError.ERR.DEVICE_INELIGIBLE("No matching credential")

        credential.counter += 1
        client_data = self._client_data("webauthn.get", options.challenge)
        auth_data = self._auth_data(rp_id, _FLAG_UP | _FLAG_UV, credential.counter)
        signature = credential.private_key.sign(
            auth_data + sha256(client_data), ec.ECDSA(hashes.SHA256())
        )
        logger.debug(f"Signed assertion with credential {credential_id.hex()}")

        return AuthenticationResponse(
            raw_id=credential_id,
            response={
                "clientDataJSON": client_data,
                "authenticatorData": auth_data,
                "signature": signature,
            },
            user_handle=credential.user_handle,
        )
