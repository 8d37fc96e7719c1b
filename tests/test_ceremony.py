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

import asyncio
import tempfile
import unittest
from unittest import mock

from fido_rp.ceremony import CeremonyOrchestrator
from fido_rp.client import SoftwarePlatform
from fido_rp.context import RelyingPartyContext
from fido_rp.errors import CeremonyError
from fido_rp.registry import CredentialRecord
from fido_rp.storage import SqliteBackend
from fido_rp.utils import websafe_encode
from fido_rp.webauthn import AuthenticationResponse, RegistrationResponse

ORIGIN = "https://example.com"
CRED_ID = bytes.fromhex("01020304")


class TestCeremonyOrchestrator(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.context = RelyingPartyContext.from_origin(ORIGIN)
        self.platform = mock.Mock()
        self.platform.create = mock.AsyncMock(
            return_value=RegistrationResponse(raw_id=CRED_ID)
        )
        self.platform.get = mock.AsyncMock(
            return_value=AuthenticationResponse(raw_id=CRED_ID)
        )
        self.orchestrator = CeremonyOrchestrator(self.context, self.platform)

    async def test_register_then_authenticate(self):
        record = await self.orchestrator.register()
        self.assertEqual(record, CredentialRecord(CRED_ID))
        self.assertEqual(
            await self.orchestrator.registry.list_all(), [CredentialRecord(CRED_ID)]
        )

        record = await self.orchestrator.authenticate()
        self.assertEqual(record, CredentialRecord(CRED_ID))

        options = self.platform.get.call_args.args[0]
        self.assertEqual(
            dict(options)["allowCredentials"],
            [
                {
                    "type": "public-key",
                    "id": websafe_encode(CRED_ID),
                    "transports": ["usb", "nfc", "ble"],
                }
            ],
        )
        self.assertIsNone(self.orchestrator.server.registration_challenge)
        self.assertIsNone(self.orchestrator.server.authentication_challenge)

    async def test_register_passes_options(self):
        await self.orchestrator.register({"id": b"alice", "name": "alice"})
        options = self.platform.create.call_args.args[0]
        self.assertEqual(options.rp.id, "example.com")
        self.assertEqual(options.user.id, b"alice")
        self.assertEqual(options.timeout, 60000)

    async def test_register_opens_registry(self):
        self.assertFalse(self.orchestrator.registry.is_open)
        await self.orchestrator.register()
        self.assertTrue(self.orchestrator.registry.is_open)

    async def test_register_json_response(self):
        self.platform.create.return_value = {
            "id": websafe_encode(CRED_ID),
            "rawId": websafe_encode(CRED_ID),
            "response": {},
            "type": "public-key",
        }
        record = await self.orchestrator.register()
        self.assertEqual(record.id, CRED_ID)

    async def test_register_failure_clears_challenge(self):
        self.platform.create.side_effect = CeremonyError.ERR.NOT_ALLOWED()
        with self.assertRaises(CeremonyError) as cm:
            await self.orchestrator.register()
        self.assertEqual(cm.exception.code, CeremonyError.ERR.NOT_ALLOWED)
        self.assertIsNone(self.orchestrator.server.registration_challenge)
        self.assertEqual(await self.orchestrator.registry.list_all(), [])

    async def test_register_platform_exception(self):
        self.platform.create.side_effect = RuntimeError("broken")
        with self.assertRaises(CeremonyError) as cm:
            await self.orchestrator.register()
        self.assertEqual(cm.exception.code, CeremonyError.ERR.OTHER_ERROR)
        self.assertIsInstance(cm.exception.cause, RuntimeError)
        self.assertIsNone(self.orchestrator.server.registration_challenge)

    async def test_register_platform_timeout(self):
        self.platform.create.side_effect = TimeoutError()
        with self.assertRaises(CeremonyError) as cm:
            await self.orchestrator.register()
        self.assertEqual(cm.exception.code, CeremonyError.ERR.TIMEOUT)

    async def test_register_malformed_response(self):
        self.platform.create.return_value = {"rawId": 1234}
        with self.assertRaises(CeremonyError) as cm:
            await self.orchestrator.register()
        self.assertEqual(cm.exception.code, CeremonyError.ERR.BAD_RESPONSE)
        self.assertEqual(await self.orchestrator.registry.list_all(), [])

    async def test_register_no_response(self):
        self.platform.create.return_value = None
        with self.assertRaises(CeremonyError) as cm:
            await self.orchestrator.register()
        self.assertEqual(cm.exception.code, CeremonyError.ERR.BAD_RESPONSE)

    async def test_authenticate_without_credentials(self):
        self.platform.get.side_effect = CeremonyError.ERR.DEVICE_INELIGIBLE()
        with self.assertRaises(CeremonyError) as cm:
            await self.orchestrator.authenticate()
        self.assertEqual(cm.exception.code, CeremonyError.ERR.DEVICE_INELIGIBLE)

        options = self.platform.get.call_args.args[0]
        self.assertEqual(options.allow_credentials, [])
        self.assertIsNone(self.orchestrator.server.authentication_challenge)

    async def test_authenticate_unknown_credential(self):
        await self.orchestrator.register()
        self.platform.get.return_value = AuthenticationResponse(raw_id=b"other")
        with self.assertRaises(CeremonyError) as cm:
            await self.orchestrator.authenticate()
        self.assertEqual(cm.exception.code, CeremonyError.ERR.UNKNOWN_CREDENTIAL)
        self.assertIsNone(self.orchestrator.server.authentication_challenge)

    async def test_authenticate_platform_exception(self):
        self.platform.get.side_effect = OSError("gone")
        with self.assertRaises(CeremonyError) as cm:
            await self.orchestrator.authenticate()
        self.assertEqual(cm.exception.code, CeremonyError.ERR.OTHER_ERROR)


    def _gated(self, make_response):
        # Each call waits until the test releases it
        started = asyncio.Queue()

        async def call(options):
            release = asyncio.Event()
            await started.put((options, release))
            await release.wait()
            return make_response(options)

        return call, started

    async def test_overlapping_registrations(self):
        self.platform.create, started = self._gated(
            lambda options: RegistrationResponse(raw_id=options.user.id)
        )
        first = asyncio.create_task(
            self.orchestrator.register({"id": b"first", "name": "first"})
        )
        _, release_first = await started.get()
        second = asyncio.create_task(
            self.orchestrator.register({"id": b"second", "name": "second"})
        )
        options_second, release_second = await started.get()

        release_first.set()
        with self.assertRaises(CeremonyError) as cm:
            await first
        self.assertEqual(cm.exception.code, CeremonyError.ERR.INVALID_STATE)
        self.assertEqual(
            self.orchestrator.server.registration_challenge, options_second.challenge
        )

        release_second.set()
        self.assertEqual(await second, CredentialRecord(b"second"))
        self.assertEqual(
            await self.orchestrator.registry.list_all(),
            [CredentialRecord(b"second")],
        )
        self.assertIsNone(self.orchestrator.server.registration_challenge)

    async def test_overlapping_authentications(self):
        await self.orchestrator.register()
        self.platform.get, started = self._gated(
            lambda options: AuthenticationResponse(raw_id=CRED_ID)
        )
        first = asyncio.create_task(self.orchestrator.authenticate())
        _, release_first = await started.get()
        second = asyncio.create_task(self.orchestrator.authenticate())
        options_second, release_second = await started.get()

        release_first.set()
        with self.assertRaises(CeremonyError) as cm:
            await first
        self.assertEqual(cm.exception.code, CeremonyError.ERR.INVALID_STATE)
        self.assertEqual(
            self.orchestrator.server.authentication_challenge,
            options_second.challenge,
        )

        release_second.set()
        self.assertEqual(await second, CredentialRecord(CRED_ID))
        self.assertIsNone(self.orchestrator.server.authentication_challenge)


class TestSoftwareCeremonies(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.context = RelyingPartyContext.from_origin(
            ORIGIN, storage=SqliteBackend(self._tmp.name)
        )
        self.platform = SoftwarePlatform(ORIGIN)
        self.orchestrator = CeremonyOrchestrator(self.context, self.platform)

    async def asyncTearDown(self):
        await self.orchestrator.registry.delete_all()
        self._tmp.cleanup()

    async def test_register_and_authenticate(self):
        registered = await self.orchestrator.register()
        self.assertEqual(self.platform.credential_ids, [registered.id])

        authenticated = await self.orchestrator.authenticate()
        self.assertEqual(authenticated, registered)

    async def test_credentials_persist(self):
        first = await self.orchestrator.register()
        second = await self.orchestrator.register()

        orchestrator = CeremonyOrchestrator(self.context, self.platform)
        await orchestrator.registry.open()
        self.assertEqual(
            {r.id for r in await orchestrator.registry.list_all()},
            {first.id, second.id},
        )
        self.assertIn(await orchestrator.authenticate(), [first, second])

    async def test_user_cancels(self):
        self.platform.user_present = False
        with self.assertRaises(CeremonyError) as cm:
            await self.orchestrator.register()
        self.assertEqual(cm.exception.code, CeremonyError.ERR.NOT_ALLOWED)
        self.assertEqual(await self.orchestrator.registry.list_all(), [])
