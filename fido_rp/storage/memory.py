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

from typing import Any, Mapping

from .base import ObjectStore, StorageBackend


class MemoryObjectStore(ObjectStore):
    def __init__(self, name: str, data: dict[str, dict[str, Any]]):
        super().__init__(name)
        self._data = data

    def _put(self, key, record):
        self._data[key] = dict(record)

    def _get_all(self):
        return [dict(record) for record in self._data.values()]


class MemoryBackend(StorageBackend):
    """Storage backend keeping all databases in memory, for tests and demos."""

    def __init__(self):
        super().__init__()
        self._databases: dict[str, dict[str, dict[str, Any]]] = {}

    def _open(self, name):
        return MemoryObjectStore(name, self._databases.setdefault(name, {}))

    def _delete(self, name):
        self._databases.pop(name, None)

    def snapshot(self, name: str) -> Mapping[str, Mapping[str, Any]]:
        """Return a copy of the records of a database, keyed by record key."""
        return {k: dict(v) for k, v in self._databases.get(name, {}).items()}
