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

"""Uploads one byte range of a file as one part of a parallel upload."""

import logging
import os

from composite_upload import errors
from composite_upload.coordinator import UploadCoordinator
from composite_upload.stream_handle import StreamHandle

logger = logging.getLogger(__name__)


class ShardUploadTask(object):
  """Streams bytes [offset, offset + length) of a file into one StreamHandle.

  The task owns its stream.  Whatever happens, the stream is closed exactly
  once, so the coordinator's count of outstanding parts always reaches zero.
  If a task is dropped without uploading, abandon() (also called from
  __del__) cancels the whole upload.
  """

  def __init__(self,
               coordinator: UploadCoordinator,
               stream: StreamHandle,
               file_name: str,
               offset: int,
               length: int,
               buffer_size: int) -> None:
    if buffer_size <= 0:
      raise ValueError(
          'Buffer size must be positive, not {}'.format(buffer_size))
    self._coordinator = coordinator
    self._stream = stream
    self._file_name = file_name
    self._offset = offset
    self._bytes_remaining = length
    self._buffer_size = buffer_size

  def __del__(self) -> None:
    # If the stream hasn't been closed by now, nobody is going to upload this
    # shard.  Make sure the whole operation fails instead of hanging.
    if getattr(self, '_stream', None) is not None and not self._stream.closed:
      logger.warning('Shard %d of %s dropped before uploading',
                     self._stream.shard_index, self._file_name)
      self.abandon()

  @property
  def bytes_remaining(self) -> int:
    return self._bytes_remaining

  def upload(self) -> None:
    """Upload the byte range.

    Raises UploadError on failure.  Every failure is also visible in the
    coordinator's aggregated result, which may hold a more detailed cause.
    """
    try:
      source = open(self._file_name, 'rb')
    except OSError:
      raise self._fail(errors.NotFoundError,
                       'cannot open upload file source') from None

    with source:
      # Seeking past the end of a file succeeds in Python, so compare sizes
      # instead.
      try:
        file_size = os.fstat(source.fileno()).st_size
        source.seek(self._offset)
      except OSError:
        raise self._fail(errors.InternalError,
                         'file changed size during upload?') from None
      if file_size < self._offset + self._bytes_remaining:
        raise self._fail(errors.InternalError,
                         'file changed size during upload?')

      while self._bytes_remaining > 0:
        to_copy = min(self._bytes_remaining, self._buffer_size)
        try:
          chunk = source.read(to_copy)
        except OSError:
          chunk = b''
        if len(chunk) != to_copy:
          raise self._fail(errors.InternalError,
                           'cannot read from file source')

        if not self._stream.write(chunk):
          # Closing reports the write error itself to the coordinator, so that
          # error wins over the generic one raised here.
          self._close_quietly()
          raise self._fail(
              errors.InternalError,
              'Writing to output stream failed, look into whole parallel '
              'upload status for more information')

        self._bytes_remaining -= to_copy

    # A failure here was already reported to the coordinator by close().
    self._stream.close()

  def abandon(self) -> None:
    """Give up on this shard without uploading it.

    Fails the whole upload with CancelledError if any bytes were left to
    upload, and closes the stream so the coordinator can still finish.
    """
    if self._stream.closed:
      return

    if self._bytes_remaining > 0:
      self._coordinator.fail(errors.CancelledError(
          'Shard destroyed before calling ShardUploadTask.upload()'))
    self._close_quietly()

  def _fail(self, error_class: type[errors.UploadError],
            reason: str) -> errors.UploadError:
    error = error_class('ShardUploadTask.upload({}): {}'.format(
        self._file_name, reason))
    self._coordinator.fail(error)
    self._close_quietly()
    return error

  def _close_quietly(self) -> None:
    if self._stream.closed:
      return
    try:
      self._stream.close()
    except Exception as e:
      # Already reported to the coordinator by the stream.
      logger.debug('Closing shard %d after a failure: %s',
                   self._stream.shard_index, e)
