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

"""Startup configuration of the relying party.

A RelyingPartyContext is built once, when the application starts, and passed to
the registry, the server and the ceremony orchestrator.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from .storage import MemoryBackend, SqliteBackend, StorageBackend
from .webauthn import (
    AuthenticatorTransport,
    PublicKeyCredentialRpEntity,
    PublicKeyCredentialUserEntity,
)

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT = 60000
DEFAULT_DATABASE_NAME = "fido-credentials"
DEFAULT_RP_NAME = "Demo server"
DEFAULT_TRANSPORTS = (
    AuthenticatorTransport.USB,
    AuthenticatorTransport.NFC,
    AuthenticatorTransport.BLE,
)
# ES256, RS256
DEFAULT_ALGORITHMS = (-7, -257)

# Placeholder user, used when the caller does not provide one
DEFAULT_USER = PublicKeyCredentialUserEntity(
    id=b"user_id", name="a_user", display_name="A. User"
)

_SCHEME = re.compile(r"^https?://")


def rp_id_from_origin(origin: str) -> str:
    """Derives the RP ID from the origin the relying party is served from.

    The http(s) scheme is stripped, the rest of the origin (host, and port if
    present) is kept as is.

    :param origin: The serving origin, eg. "https://example.com".
    :return: The RP ID.
    """
    rp_id = _SCHEME.sub("", origin or "")
    if not rp_id:
        raise ValueError(f"Unable to derive an RP ID from origin {origin!r}")
    return rp_id


@dataclass(frozen=True)
class RelyingPartyContext:
    """Configuration and collaborators shared by the relying party components.

    :ivar origin: The origin the relying party is served from.
    :ivar rp: The relying party identity, its ID derived from the origin.
    :ivar storage: The backend holding the credential database.
    :ivar database_name: The logical name of the credential database.
    :ivar timeout: The advisory ceremony timeout, in milliseconds.
    :ivar transports: The transport hints attached to allowed credentials.
    :ivar algorithms: The COSE algorithms requested at registration, in order
        of preference.
    :ivar user: The user registered when the caller does not provide one.
    """

    origin: str
    rp: PublicKeyCredentialRpEntity
    storage: StorageBackend = field(default_factory=MemoryBackend)
    database_name: str = DEFAULT_DATABASE_NAME
    timeout: int = DEFAULT_TIMEOUT
    transports: Sequence[AuthenticatorTransport] = DEFAULT_TRANSPORTS
    algorithms: Sequence[int] = DEFAULT_ALGORITHMS
    user: PublicKeyCredentialUserEntity = field(default_factory=lambda: DEFAULT_USER)

    def __post_init__(self):
        if not isinstance(self.timeout, int) or self.timeout <= 0:
            raise ValueError(f"Timeout must be a positive integer: {self.timeout!r}")
        if not self.algorithms:
            raise ValueError("At least one algorithm is required.")

    @classmethod
    def from_origin(
        cls, origin: str, rp_name: str = DEFAULT_RP_NAME, **kwargs
    ) -> RelyingPartyContext:
        """Create a context for a serving origin.

        :param origin: The serving origin, the RP ID is derived from it.
        :param rp_name: The human readable name of the relying party.
        :param kwargs: Other RelyingPartyContext fields to override.
        """
        rp = PublicKeyCredentialRpEntity(name=rp_name, id=rp_id_from_origin(origin))
        logger.debug(f"RP ID: {rp.id}")
        return cls(origin=origin, rp=rp, **kwargs)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> RelyingPartyContext:
        """Create a context from environment variables.

        FIDO_RP_ORIGIN (required): the serving origin.
        FIDO_RP_NAME: the relying party name.
        FIDO_RP_TIMEOUT: the ceremony timeout, in milliseconds.
        FIDO_RP_DATA_DIR: a directory for SQLite databases. Credentials are kept
        in memory if not set.
        """
        origin = environ.get("FIDO_RP_ORIGIN")
        if not origin:
            raise ValueError("FIDO_RP_ORIGIN must be set.")

        kwargs: dict = {}
        timeout = environ.get("FIDO_RP_TIMEOUT")
        if timeout:
            try:
                kwargs["timeout"] = int(timeout)
            except ValueError:
                raise ValueError(f"Invalid FIDO_RP_TIMEOUT: {timeout!r}")
        data_dir = environ.get("FIDO_RP_DATA_DIR")
        if data_dir:
            kwargs["storage"] = SqliteBackend(data_dir)

        return cls.from_origin(
            origin, environ.get("FIDO_RP_NAME", DEFAULT_RP_NAME), **kwargs
        )
