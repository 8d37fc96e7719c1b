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

"""
Registers a new credential with an in-memory software platform, stores it in the
credential registry, and authenticates with it.
Set FIDO_RP_ORIGIN to use another origin, and FIDO_RP_DATA_DIR to keep the
registered credentials in a SQLite database between runs.
"""

import asyncio
import logging
import os

from fido_rp.ceremony import CeremonyOrchestrator
from fido_rp.client import SoftwarePlatform
from fido_rp.context import RelyingPartyContext

logging.basicConfig(level=logging.INFO)

environ = dict(os.environ)
environ.setdefault("FIDO_RP_ORIGIN", "https://example.com")
context = RelyingPartyContext.from_env(environ)
print("RP ID:", context.rp.id)

platform = SoftwarePlatform(context.origin)
orchestrator = CeremonyOrchestrator(context, platform)

user = {"id": b"user_id", "name": "A. User"}


async def main():
    # Create a credential, and store its ID
    registered = await orchestrator.register(user)
    print("New credential created!")
    print("CREDENTIAL ID:", registered.key)

    # Authenticate the credential, any registered credential is allowed
    authenticated = await orchestrator.authenticate()
    print("Credential authenticated!")
    print("CREDENTIAL ID:", authenticated.key)

    print("Registered credentials:")
    for record in await orchestrator.registry.list_all():
        print(" ", record.key)


asyncio.run(main())
