# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Errors raised by the parallel upload engine.

Errors raised by the cloud backends (session creation, compose, delete) are
never wrapped in these types.  They reach the caller unchanged.
"""

import enum


class StatusCode(enum.Enum):
  NOT_FOUND = 'not_found'
  """The upload source could not be opened."""

  INTERNAL = 'internal'
  """The source changed size, could not be read, or a write failed."""

  CANCELLED = 'cancelled'
  """A shard was abandoned before it finished uploading."""

  FAILED_PRECONDITION = 'failed_precondition'
  """An operation was attempted in the wrong state."""


class UploadError(Exception):
  """A base class for errors produced by the upload engine itself."""

  code: StatusCode = StatusCode.INTERNAL

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message

  def __str__(self) -> str:
    return '{}: {}'.format(self.code.name, self.message)


class NotFoundError(UploadError):
  code = StatusCode.NOT_FOUND


class InternalError(UploadError):
  code = StatusCode.INTERNAL


class CancelledError(UploadError):
  code = StatusCode.CANCELLED


class FailedPreconditionError(UploadError):
  code = StatusCode.FAILED_PRECONDITION
