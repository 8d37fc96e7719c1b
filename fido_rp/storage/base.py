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
import logging
from threading import Lock
from typing import Any, Mapping

from ..errors import InvalidArgument, StorageUnavailable
from ..utils import LOG_LEVEL_TRAFFIC

logger = logging.getLogger(__name__)


class ObjectStore(abc.ABC):
    """
    Handle to an opened database, holding a single collection of records keyed
    by credential ID. Subclasses should implement _put and _get_all.

    A handle which has been closed, either explicitly or because its database was
    deleted, raises StorageUnavailable on any further use.
    """

    def __init__(self, name: str):
        self.name = name
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise StorageUnavailable(f"Database {self.name!r} is closed")

    def put(self, key: str, record: Mapping[str, Any]) -> None:
        """Stores a record, replacing any existing record with the same key.

        :param key: The key of the record.
        :param record: A JSON-serializable record.
        """
        self._check_open()
        logger.log(LOG_LEVEL_TRAFFIC, "PUT %s: %r", self.name, record)
        self._put(key, record)

    def get_all(self) -> list[dict[str, Any]]:
        """Reads all records, in no particular order."""
        self._check_open()
        records = self._get_all()
        logger.log(LOG_LEVEL_TRAFFIC, "GET ALL %s: %r", self.name, records)
        return records

    def close(self) -> None:
        """Close the handle, releasing any held resources."""
        if not self._closed:
            self._closed = True
            self._close()

    def __enter__(self):
        return self

    def __exit__(self, typ, value, traceback):
        self.close()

    @abc.abstractmethod
    def _put(self, key: str, record: Mapping[str, Any]) -> None:
        """Write a single record."""

    @abc.abstractmethod
    def _get_all(self) -> list[dict[str, Any]]:
        """Read all records."""

    def _close(self) -> None:
        """Release resources held by the handle."""


class StorageBackend(abc.ABC):
    """
    Key-value storage engine holding named databases. Subclasses should implement
    _open, which opens (creating if needed) a database, and _delete, which
    destroys one.

    Every handle given out by open is tracked, so that delete_database can
    invalidate the handles still held for a database.
    """

    def __init__(self):
        self._lock = Lock()
        self._handles: dict[str, list[ObjectStore]] = {}

    @staticmethod
    def _check_name(name: str) -> None:
        if not name or not isinstance(name, str):
            raise InvalidArgument("Database name must be a non-empty string")

    def open(self, name: str) -> ObjectStore:
        """Opens a named database, creating it if it does not exist.

        :param name: The logical name of the database.
        :return: A handle to the database.
        :raises StorageUnavailable: If the database can not be created or opened.
        """
        self._check_name(name)
        with self._lock:
            store = self._open(name)
            # Closed handles need no invalidation
            handles = [h for h in self._handles.get(name, []) if not h.closed]
            handles.append(store)
            self._handles[name] = handles
        logger.debug(f"Opened database {name!r} using {type(self).__name__}")
        return store

    def delete_database(self, name: str) -> None:
        """Destroys a named database, closing all handles opened for it.

        Deleting a database which does not exist is not an error.

        :param name: The logical name of the database.
        """
        self._check_name(name)
        with self._lock:
            for store in self._handles.pop(name, []):
                store.close()
            self._delete(name)
        logger.debug(f"Deleted database {name!r}")

    @abc.abstractmethod
    def _open(self, name: str) -> ObjectStore:
        """Open or create a database."""

    @abc.abstractmethod
    def _delete(self, name: str) -> None:
        """Destroy a database."""
