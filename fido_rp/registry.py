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

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping

from .context import RelyingPartyContext
from .errors import InvalidArgument, InvalidEncoding, NotInitialized
from .storage import ObjectStore
from .utils import hex_decode, hex_encode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialRecord:
    """A registered credential, identified by its raw credential ID.

    :ivar id: The non-empty binary credential ID.
    """

    id: bytes

    def __post_init__(self):
        if not isinstance(self.id, (bytes, bytearray, memoryview)):
            raise InvalidArgument(
                f"Credential ID must be bytes, got {type(self.id).__name__}"
            )
        object.__setattr__(self, "id", bytes(self.id))
        if not self.id:
            raise InvalidArgument("Credential ID must not be empty")

    @property
    def key(self) -> str:
        """The key the record is stored under, the hex encoded ID."""
        return hex_encode(self.id)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.key}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CredentialRecord:
        """Parse a stored record.

        :raises InvalidEncoding: If the record has no valid hex encoded ID.
        """
        try:
            encoded = data["id"]
        except (KeyError, TypeError):
            raise InvalidEncoding(f"Stored record has no id: {data!r}")
        credential_id = hex_decode(encoded)
        if not credential_id:
            raise InvalidEncoding("Stored record has an empty id")
        return cls(credential_id)


class CredentialRegistry:
    """Persistent registry of credential IDs.

    The registry must be opened before use. Records are kept in the database
    named by the context, in the context's storage backend. Blocking storage
    calls run in a worker thread.

    Concurrent put and list_all calls get the isolation of the backing store,
    each call being its own transaction. No atomicity across calls is provided.

    :param context: The relying party context.
    """

    def __init__(self, context: RelyingPartyContext):
        self._backend = context.storage
        self.name = context.database_name
        self._store: ObjectStore | None = None
        self._opening = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._store is not None

    async def open(self) -> ObjectStore:
        """Open the registry, creating the backing database if needed.

        Opening an already open registry returns the existing handle.

        :return: The handle to the backing database.
        :raises StorageUnavailable: If the database can not be opened.
        """
        async with self._opening:
            if self._store is None:
                self._store = await asyncio.to_thread(self._backend.open, self.name)
                logger.debug(f"Credential registry {self.name!r} opened")
        return self._store

    def _require_open(self) -> ObjectStore:
        if self._store is None:
            raise NotInitialized("Credential registry has not been opened")
        return self._store

    async def put(self, credential_id: bytes) -> CredentialRecord:
        """Store a credential, replacing any record with the same ID.

        :param credential_id: The binary credential ID.
        :return: The stored record.
        :raises NotInitialized: If the registry is not open.
        :raises InvalidArgument: If the ID is empty, or not bytes-like.
        """
        store = self._require_open()
        record = CredentialRecord(credential_id)
        await asyncio.to_thread(store.put, record.key, record.to_dict())
        return record

    async def list_all(self) -> list[CredentialRecord]:
        """Read all registered credentials, in no particular order.

        :raises NotInitialized: If the registry is not open.
        :raises InvalidEncoding: If a stored record can not be decoded.
        """
        store = self._require_open()
        rows = await asyncio.to_thread(store.get_all)
        return [CredentialRecord.from_dict(row) for row in rows]

    async def delete_all(self) -> None:
        """Destroy the backing database, and close the registry.

        Handles to the database obtained earlier are invalidated. A later call to
        open creates a new, empty, database.
        """
        self._store = None
        await asyncio.to_thread(self._backend.delete_database, self.name)
        logger.info(f"Credential registry {self.name!r} deleted")
