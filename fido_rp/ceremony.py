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

"""Registration and authentication ceremonies.

Each ceremony is a three step pipeline: a challenge is issued by the local
server, the platform performs the ceremony, and the response is sent back to the
local server. The challenge is cleared when the ceremony ends, also on failure.
No step is retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping

from .client import WebAuthnPlatform
from .context import RelyingPartyContext
from .errors import CeremonyError, RelyingPartyError
from .registry import CredentialRecord, CredentialRegistry
from .server import LocalServer
from .webauthn import PublicKeyCredentialUserEntity

logger = logging.getLogger(__name__)


async def _call_platform(func, options):
    try:
        return await func(options)
    except RelyingPartyError:
        raise
    except (TimeoutError, asyncio.TimeoutError) as e:
        raise CeremonyError.ERR.TIMEOUT(e) from e
    except Exception as e:
        raise CeremonyError.ERR.OTHER_ERROR(e) from e


class CeremonyOrchestrator:
    """Runs WebAuthn ceremonies between the local server and the platform.

    :param context: The relying party context.
    :param platform: The platform performing the ceremonies.
    :param registry: (optional) The credential registry, created from the context
        if not given.
    :param server: (optional) The local server, created from the context if not
        given.
    """

    def __init__(
        self,
        context: RelyingPartyContext,
        platform: WebAuthnPlatform,
        registry: CredentialRegistry | None = None,
        server: LocalServer | None = None,
    ):
        self.platform = platform
        self.registry = registry or CredentialRegistry(context)
        self.server = server or LocalServer(context, self.registry)

    async def register(
        self,
        user: PublicKeyCredentialUserEntity | Mapping[str, Any] | None = None,
    ) -> CredentialRecord:
        """Register a new credential, and store it in the registry.

        :param user: (optional) The user to register a credential for.
        :return: The stored credential.
        """
        await self.registry.open()
        options = self.server.register_begin(user)
        try:
            response = await _call_platform(self.platform.create, options)
            return await self.server.register_complete(response, options.challenge)
        except RelyingPartyError as e:
            logger.debug(f"Registration failed: {e!r}")
            raise
        finally:
            self.server.register_abort(options.challenge)

    async def authenticate(self) -> CredentialRecord:
        """Authenticate using any of the registered credentials.

        :return: The credential used.
        """
        await self.registry.open()
        options = await self.server.authenticate_begin()
        try:
            response = await _call_platform(self.platform.get, options)
            return self.server.authenticate_complete(response, options.challenge)
        except RelyingPartyError as e:
            logger.debug(f"Authentication failed: {e!r}")
            raise
        finally:
            self.server.authenticate_abort(options.challenge)
