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

import json
import logging
import os
import sqlite3
from threading import Lock

from ..errors import InvalidArgument, InvalidEncoding, StorageUnavailable
from .base import ObjectStore, StorageBackend

logger = logging.getLogger(__name__)


_CREATE_TABLE = (
    "CREATE TABLE IF NOT EXISTS records (key TEXT PRIMARY KEY, record TEXT NOT NULL)"
)
_PUT = "INSERT OR REPLACE INTO records (key, record) VALUES (?, ?)"
_GET_ALL = "SELECT record FROM records"


class SqliteObjectStore(ObjectStore):
    """
    ObjectStore backed by a single SQLite table. Each put is committed in its own
    transaction, so concurrent readers see the last committed state.
    """

    def __init__(self, name: str, connection: sqlite3.Connection):
        super().__init__(name)
        self._connection = connection
        self._lock = Lock()

    def _put(self, key, record):
        try:
            with self._lock, self._connection:
                self._connection.execute(_PUT, (key, json.dumps(dict(record))))
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Write to {self.name!r} failed: {e}") from e

    def _get_all(self):
        try:
            with self._lock:
                rows = self._connection.execute(_GET_ALL).fetchall()
        except sqlite3.Error as e:
            raise StorageUnavailable(f"Read from {self.name!r} failed: {e}") from e
        try:
            return [json.loads(row[0]) for row in rows]
        except ValueError as e:
            raise InvalidEncoding(f"Corrupt record in {self.name!r}: {e}") from e

    def _close(self):
        with self._lock:
            self._connection.close()


class SqliteBackend(StorageBackend):
    """Storage backend keeping each database in its own SQLite file.

    :param directory: The directory holding the database files. It is created
        when the first database is opened.
    """

    def __init__(self, directory: str | os.PathLike):
        super().__init__()
        self.directory = os.fspath(directory)

    def path_for(self, name: str) -> str:
        """Get the path of the file holding the named database."""
        if os.sep in name or (os.altsep and os.altsep in name) or name in (".", ".."):
            raise InvalidArgument(f"Invalid database name: {name!r}")
        return os.path.join(self.directory, f"{name}.sqlite3")

    def _open(self, name):
        path = self.path_for(name)
        try:
            os.makedirs(self.directory, exist_ok=True)
            connection = sqlite3.connect(path, check_same_thread=False)
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable(f"Unable to open database {name!r}: {e}") from e
        try:
            with connection:
                connection.execute(_CREATE_TABLE)
        except sqlite3.Error as e:
            connection.close()
            raise StorageUnavailable(f"Unable to open database {name!r}: {e}") from e
        logger.debug(f"Using SQLite database at {path}")
        return SqliteObjectStore(name, connection)

    def _delete(self, name):
        path = self.path_for(name)
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageUnavailable(f"Unable to delete database {name!r}: {e}") from e
