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

from enum import IntEnum, unique


class RelyingPartyError(Exception):
    """Base error raised by the relying party."""


class NotInitialized(RelyingPartyError):
    """Raised when the credential registry is used before it has been opened."""


class InvalidArgument(RelyingPartyError, ValueError):
    """Raised when an empty or malformed credential ID is passed to a write."""


class InvalidEncoding(RelyingPartyError, ValueError):
    """Raised when a stored value can not be decoded."""


class StorageUnavailable(RelyingPartyError):
    """Raised when the backing store can not be opened or a transaction fails.

    Also raised when a handle is used after the database it belongs to has been
    deleted.
    """


class CeremonyError(RelyingPartyError):
    """Raised when a registration or authentication ceremony fails."""

    @unique
    class ERR(IntEnum):
        """Error codes for CeremonyError."""

        OTHER_ERROR = 1
        BAD_REQUEST = 2
        CONFIGURATION_UNSUPPORTED = 3
        DEVICE_INELIGIBLE = 4
        TIMEOUT = 5
        NOT_ALLOWED = 6
        BAD_RESPONSE = 7
        UNKNOWN_CREDENTIAL = 8
        INVALID_STATE = 9

        def __call__(self, cause=None):
            return CeremonyError(self, cause)

    def __init__(self, code, cause=None):
        self.code = CeremonyError.ERR(code)
        self.cause = cause
        super().__init__(repr(self))

    def __repr__(self):
        r = "Ceremony error: {0} - {0.name}".format(self.code)
        if self.cause:
            r += f" (cause: {self.cause})"
        return r
