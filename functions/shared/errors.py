# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================


class PortalError(Exception):
    """Base class for errors surfaced to portal callers."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotAuthenticated(PortalError):
    def __init__(self, message: str = "No user is signed in"):
        super().__init__(message)


class ValidationError(PortalError):
    pass


class TermsNotAccepted(ValidationError):
    def __init__(
        self, message: str = "You must agree to the terms to submit your profile"
    ):
        super().__init__(message)


class NotFoundError(PortalError):
    pass


class ProfileMissing(NotFoundError):
    def __init__(
        self,
        message: str = "Profile doesn't exist. Please save your profile details first.",
    ):
        super().__init__(message)


class IllegalTransition(PortalError):
    pass


class TokenAlreadyUsed(PortalError):
    pass


class TokenExpired(PortalError):
    pass


class StoreError(PortalError):
    """A document store call failed. The original exception is chained."""
