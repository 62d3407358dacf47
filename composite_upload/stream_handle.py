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

"""A write stream for one part of a parallel upload."""

import abc
import logging

from typing import Optional

from composite_upload.cloud.base import RemoteSessionBase
from composite_upload.object_metadata import PartMetadata

logger = logging.getLogger(__name__)


class AbstractCoordinator(object):
  """An interface for a StreamHandle (below) to talk to UploadCoordinator
  (which creates StreamHandles).  Created to break a circular dependency for
  static typing."""

  @abc.abstractmethod
  def report_part_result(self, shard_index: int,
                         metadata: Optional[PartMetadata] = None,
                         error: Optional[Exception] = None) -> None:
    """Record the outcome of one part."""
    pass


class StreamHandle(object):
  """A proxy for one remote write session that reports back to the
  coordinator when it is closed."""

  def __init__(self, coordinator: AbstractCoordinator, shard_index: int,
               session: RemoteSessionBase) -> None:
    self._coordinator = coordinator
    self._shard_index = shard_index
    self._session = session

    # The first transport error seen by write().  Once set, the stream is
    # unhealthy and the remote session is never finalized.
    self._error: Optional[Exception] = None

    self._closed = False
    self._metadata: Optional[PartMetadata] = None

  @property
  def shard_index(self) -> int:
    return self._shard_index

  @property
  def closed(self) -> bool:
    return self._closed

  @property
  def good(self) -> bool:
    return self._error is None and not self._closed

  def write(self, data: bytes) -> bool:
    """Forward data to the remote session.

    Returns False if the stream is unhealthy.  The cause is not reported to the
    coordinator here; it becomes this part's result when the stream is closed.
    """
    if not self.good:
      return False

    try:
      self._session.write(data)
    except Exception as e:
      logger.debug('Write to shard %d failed: %s', self._shard_index, e)
      self._error = e
      return False
    return True

  def close(self) -> PartMetadata:
    """Finalize the remote session and report the result to the coordinator.

    Returns the part's metadata, or raises the error that was reported.  Only
    the first call reports anything; later calls repeat the first outcome.
    """
    if not self._closed:
      self._closed = True

      if self._error is None:
        try:
          self._metadata = self._session.close()
        except Exception as e:
          self._error = e

      self._coordinator.report_part_result(
          self._shard_index, metadata=self._metadata, error=self._error)

    if self._error is not None:
      raise self._error
    assert self._metadata is not None
    return self._metadata
