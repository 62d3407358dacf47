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

"""Tracks temporary objects so they can be deleted in one batch."""

import logging

from typing import Callable, List, Optional

from composite_upload.object_metadata import PartMetadata

logger = logging.getLogger(__name__)

DeleteFunction = Callable[[List[PartMetadata]], None]


class CleanupRegistry(object):
  """Records every part object that was actually created.

  This class is not thread-safe on its own.  The UploadCoordinator that owns it
  only touches it while holding its lock.
  """

  def __init__(self, delete_fn: DeleteFunction) -> None:
    self._delete_fn = delete_fn
    self._objects: List[PartMetadata] = []
    self._executed = False
    self._error: Optional[Exception] = None

  @property
  def objects(self) -> List[PartMetadata]:
    return list(self._objects)

  def add(self, metadata: PartMetadata) -> None:
    self._objects.append(metadata)

  def execute_delete(self) -> None:
    """Delete everything recorded so far.

    The delete function runs at most once.  Later calls re-raise the error from
    the first call, if there was one.
    """
    if not self._executed:
      self._executed = True
      if self._objects:
        logger.info('Deleting %d temporary objects', len(self._objects))
        try:
          self._delete_fn(list(self._objects))
        except Exception as e:
          self._error = e

    if self._error is not None:
      raise self._error
