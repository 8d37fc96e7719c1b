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

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from cryptography.hazmat.primitives import constant_time

from .context import RelyingPartyContext
from .errors import CeremonyError
from .registry import CredentialRecord, CredentialRegistry
from .webauthn import (
    AuthenticationResponse,
    PublicKeyCredentialCreationOptions,
    PublicKeyCredentialDescriptor,
    PublicKeyCredentialParameters,
    PublicKeyCredentialRequestOptions,
    PublicKeyCredentialType,
    PublicKeyCredentialUserEntity,
    RegistrationResponse,
)

logger = logging.getLogger(__name__)


CHALLENGE_SIZE = 16


def _validate_challenge(challenge: bytes | None) -> bytes:
    if challenge is None:
        challenge = os.urandom(CHALLENGE_SIZE)
    else:
        if not isinstance(challenge, bytes):
            raise TypeError("Custom challenge must be of type 'bytes'.")
        if len(challenge) < CHALLENGE_SIZE:
            raise ValueError(f"Custom challenge length must be >= {CHALLENGE_SIZE}.")
    return challenge


def _parse_response(cls, response):
    if response is None:
        raise CeremonyError.ERR.BAD_RESPONSE("No response from platform")
    try:
        return cls.from_dict(response)
    except (TypeError, ValueError) as e:
        raise CeremonyError.ERR.BAD_RESPONSE(e) from e


def _check_pending(pending, challenge, kind):
    if pending is None:
        raise CeremonyError.ERR.INVALID_STATE(f"No {kind} in progress")
    if challenge is not None and not constant_time.bytes_eq(
        pending.challenge, challenge
    ):
        raise CeremonyError.ERR.INVALID_STATE(f"Challenge of {kind} was discarded")
    return pending


@dataclass(frozen=True)
class _PendingCeremony:
    challenge: bytes
    allowed: Sequence[bytes] = ()


class LocalServer:
    """In-process stand-in for a FIDO server.

    Issues challenges for registration and authentication and accepts the
    responses produced by the platform. At most one ceremony of each kind is in
    flight at a time, its challenge is kept in memory only until the ceremony
    ends, successfully or not.

    Responses are accepted without verifying signatures, attestation, origin or
    challenge binding.

    :param context: The relying party context.
    :param registry: The credential registry, which must be opened before
        completing a registration or beginning an authentication.
    """

    def __init__(self, context: RelyingPartyContext, registry: CredentialRegistry):
        self.rp = context.rp
        self.registry = registry
        self.timeout = context.timeout
        self.transports = list(context.transports)
        self.default_user = context.user
        self.allowed_algorithms = [
            PublicKeyCredentialParameters(
                type=PublicKeyCredentialType.PUBLIC_KEY, alg=alg
            )
            for alg in context.algorithms
        ]
        self._registration: _PendingCeremony | None = None
        self._authentication: _PendingCeremony | None = None
        logger.debug(f"LocalServer initialized for RP: {self.rp}")

    @property
    def registration_challenge(self) -> bytes | None:
        """The challenge of the registration in flight, if any."""
        return self._registration.challenge if self._registration else None

    @property
    def authentication_challenge(self) -> bytes | None:
        """The challenge of the authentication in flight, if any."""
        return self._authentication.challenge if self._authentication else None

    def register_begin(
        self,
        user: PublicKeyCredentialUserEntity | Mapping[str, Any] | None = None,
        challenge: bytes | None = None,
    ) -> PublicKeyCredentialCreationOptions:
        """Start a registration, returning the options to pass to the platform.

        :param user: The user to register a credential for, the placeholder user
            of the context is used if not given.
        :param challenge: A custom challenge, or None to use OS-specific random
            bytes.
        :return: Registration options.
        """
        challenge = _validate_challenge(challenge)
        user = PublicKeyCredentialUserEntity.from_dict(
            user if user is not None else self.default_user
        )
        if self._registration is not None:
            logger.warning("Discarding challenge of unfinished registration")
        self._registration = _PendingCeremony(challenge)
        logger.debug("Starting new registration")

        return PublicKeyCredentialCreationOptions(
            rp=self.rp,
            user=user,
            challenge=challenge,
            pub_key_cred_params=self.allowed_algorithms,
            timeout=self.timeout,
            exclude_credentials=[],
        )

    async def register_complete(
        self,
        response: RegistrationResponse | Mapping[str, Any],
        challenge: bytes | None = None,
    ) -> CredentialRecord:
        """Accept the platform response to a registration, storing the credential.

        The registration challenge is cleared, whether the response is accepted
        or not.

        :param response: The registration response from the platform.
        :param challenge: (optional) The challenge the registration was started
            with. If given, it must be the challenge still in flight, otherwise
            the response is rejected and the pending registration is kept.
        :return: The stored credential.
        :raises CeremonyError: If no registration is in flight, or the response
            is malformed.
        """
        _check_pending(self._registration, challenge, "registration")
        self._registration = None
        registration = _parse_response(RegistrationResponse, response)
        record = await self.registry.put(registration.raw_id)
        logger.info("New credential registered: " + record.key)
        return record

    def register_abort(self, challenge: bytes | None = None) -> None:
        """Clear the registration challenge without storing anything.

        :param challenge: If given, only clear the registration using this
            challenge.
        """
        if self._registration and challenge in (None, self._registration.challenge):
            logger.debug("Registration aborted")
            self._registration = None

    async def authenticate_begin(
        self, challenge: bytes | None = None
    ) -> PublicKeyCredentialRequestOptions:
        """Start an authentication, returning the options to pass to the platform.

        All registered credentials are allowed.

        :param challenge: A custom challenge, or None to use OS-specific random
            bytes.
        :return: Authentication options.
        """
        challenge = _validate_challenge(challenge)
        records = await self.registry.list_all()
        descriptors = [
            PublicKeyCredentialDescriptor(
                type=PublicKeyCredentialType.PUBLIC_KEY,
                id=record.id,
                transports=self.transports,
            )
            for record in records
        ]
        if self._authentication is not None:
            logger.warning("Discarding challenge of unfinished authentication")
        self._authentication = _PendingCeremony(challenge, [d.id for d in descriptors])
        logger.debug(
            "Starting new authentication, for credentials: "
            + ", ".join(d.id.hex() for d in descriptors)
        )

        return PublicKeyCredentialRequestOptions(
            challenge=challenge,
            timeout=self.timeout,
            rp_id=self.rp.id,
            allow_credentials=descriptors,
        )

    def authenticate_complete(
        self,
        response: AuthenticationResponse | Mapping[str, Any],
        challenge: bytes | None = None,
    ) -> CredentialRecord:
        """Accept the platform response to an authentication.

        The authentication challenge is cleared, whether the response is
        accepted or not.

        :param response: The authentication response from the platform.
        :param challenge: (optional) The challenge the authentication was
            started with. If given, it must be the challenge still in flight,
            otherwise the response is rejected and the pending authentication is
            kept.
        :return: The authenticated credential.
        :raises CeremonyError: If no authentication is in flight, the response is
            malformed, or the credential was not in the allow-list.
        """
        pending = _check_pending(self._authentication, challenge, "authentication")
        self._authentication = None
        authentication = _parse_response(AuthenticationResponse, response)
        credential_id = authentication.raw_id

        for allowed_id in pending.allowed:
            if constant_time.bytes_eq(allowed_id, credential_id):
                logger.info(f"Credential authenticated: {credential_id.hex()}")
                return CredentialRecord(allowed_id)
        raise CeremonyError.ERR.UNKNOWN_CREDENTIAL(
            f"Unknown credential ID: {credential_id.hex()}"
        )

    def authenticate_abort(self, challenge: bytes | None = None) -> None:
        """Clear the authentication challenge.

        :param challenge: If given, only clear the authentication using this
            challenge.
        """
        if self._authentication and challenge in (
            None,
            self._authentication.challenge,
        ):
            logger.debug("Authentication aborted")
            self._authentication = None

