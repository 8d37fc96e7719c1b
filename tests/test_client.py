import json
import unittest

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import load_der_public_key

from fido_rp.client import SoftwarePlatform
from fido_rp.errors import CeremonyError
from fido_rp.utils import sha256, websafe_decode
from fido_rp.webauthn import (
    PublicKeyCredentialCreationOptions,
    PublicKeyCredentialDescriptor,
    PublicKeyCredentialRequestOptions,
    PublicKeyCredentialType,
)

ORIGIN = "https://example.com"
rp = {"id": "example.com", "name": "Example RP"}
user = {"id": b"user_id", "name": "A. User"}
challenge = b"Y2hhbGxlbmdlIQ!!"
rp_id_hash = (
    b"\xa3y\xa6\xf6\xee\xaf\xb9\xa5^7\x8c\x11\x804\xe2u\x1eh/"
    b"\xab\x9f-0\xab\x13\xd2\x12U\x86\xce\x19G"
)


def _creation_options(**kwargs):
    return PublicKeyCredentialCreationOptions(
        rp=rp,
        user=user,
        challenge=challenge,
        pub_key_cred_params=[{"type": "public-key", "alg": -7}],
        **kwargs,
    )


def _descriptor(credential_id):
    return PublicKeyCredentialDescriptor(
        type=PublicKeyCredentialType.PUBLIC_KEY, id=credential_id
    )


class TestSoftwarePlatform(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.platform = SoftwarePlatform(ORIGIN)

    async def test_create(self):
        response = await self.platform.create(_creation_options(timeout=60000))
        self.assertEqual(self.platform.credential_ids, [response.raw_id])
        self.assertEqual(len(response.raw_id), 32)

        client_data = json.loads(response.response["clientDataJSON"])
        self.assertEqual(client_data["type"], "webauthn.create")
        self.assertEqual(client_data["origin"], ORIGIN)
        self.assertEqual(websafe_decode(client_data["challenge"]), challenge)
        self.assertEqual(response.response["publicKeyAlgorithm"], -7)
        self.assertEqual(response.response["authenticatorData"][:32], rp_id_hash)

    async def test_create_from_json(self):
        options = dict(_creation_options())
        response = await self.platform.create(options)
        self.assertEqual(self.platform.credential_ids, [response.raw_id])

    async def test_create_unsupported_algorithm(self):
        options = PublicKeyCredentialCreationOptions(
            rp=rp,
            user=user,
            challenge=challenge,
            pub_key_cred_params=[{"type": "public-key", "alg": -257}],
        )
        with self.assertRaises(CeremonyError) as cm:
            await self.platform.create(options)
        self.assertEqual(cm.exception.code, CeremonyError.ERR.CONFIGURATION_UNSUPPORTED)

    async def test_create_excluded(self):
        existing = await self.platform.create(_creation_options())
        with self.assertRaises(CeremonyError) as cm:
            await self.platform.create(
                _creation_options(exclude_credentials=[_descriptor(existing.raw_id)])
            )
        self.assertEqual(cm.exception.code, CeremonyError.ERR.DEVICE_INELIGIBLE)
        self.assertEqual(len(self.platform.credential_ids), 1)

    async def test_create_cancelled(self):
        self.platform.user_present = False
        with self.assertRaises(CeremonyError) as cm:
            await self.platform.create(_creation_options())
        self.assertEqual(cm.exception.code, CeremonyError.ERR.NOT_ALLOWED)
        self.assertEqual(self.platform.credential_ids, [])

    async def test_get(self):
        created = await self.platform.create(_creation_options())
        response = await self.platform.get(
            PublicKeyCredentialRequestOptions(
                challenge=challenge,
                rp_id="example.com",
                allow_credentials=[_descriptor(created.raw_id)],
            )
        )
        self.assertEqual(response.raw_id, created.raw_id)
        self.assertEqual(response.user_handle, b"user_id")

        assertion = response.response
        client_data = json.loads(assertion["clientDataJSON"])
        self.assertEqual(client_data["type"], "webauthn.get")
        self.assertEqual(websafe_decode(client_data["challenge"]), challenge)

        public_key = load_der_public_key(created.response["publicKey"])
        public_key.verify(
            assertion["signature"],
            assertion["authenticatorData"] + sha256(assertion["clientDataJSON"]),
            ec.ECDSA(hashes.SHA256()),
        )

    async def test_get_counter(self):
        await self.platform.create(_creation_options())
        options = PublicKeyCredentialRequestOptions(
            challenge=challenge, rp_id="example.com"
        )
        first = await self.platform.get(options)
        second = await self.platform.get(options)
        self.assertEqual(first.response["authenticatorData"][33:], b"\0\0\0\x01")
        self.assertEqual(second.response["authenticatorData"][33:], b"\0\0\0\x02")

    async def test_get_unknown_credential(self):
        await self.platform.create(_creation_options())
        with self.assertRaises(CeremonyError) as cm:
            await self.platform.get(
                PublicKeyCredentialRequestOptions(
                    challenge=challenge,
                    rp_id="example.com",
                    allow_credentials=[_descriptor(b"\x01\x02\x03\x04")],
                )
            )
        self.assertEqual(cm.exception.code, CeremonyError.ERR.DEVICE_INELIGIBLE)

    async def test_get_other_rp(self):
        created = await self.platform.create(_creation_options())
        with self.assertRaises(CeremonyError) as cm:
            await self.platform.get(
                PublicKeyCredentialRequestOptions(
                    challenge=challenge,
                    rp_id="example.org",
                    allow_credentials=[_descriptor(created.raw_id)],
                )
            )
        self.assertEqual(cm.exception.code, CeremonyError.ERR.DEVICE_INELIGIBLE)

    async def test_get_cancelled(self):
        created = await self.platform.create(_creation_options())
        self.platform.user_present = False
        with self.assertRaises(CeremonyError) as cm:
            await self.platform.get(
                PublicKeyCredentialRequestOptions(
                    challenge=challenge,
                    rp_id="example.com",
                    allow_credentials=[_descriptor(created.raw_id)],
                )
            )
        self.assertEqual(cm.exception.code, CeremonyError.ERR.NOT_ALLOWED)
