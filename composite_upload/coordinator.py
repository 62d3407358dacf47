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

"""Shared state for one parallel upload.

Every StreamHandle created by the coordinator reports its outcome here.  When
the last outstanding part reports in, the coordinator composes the parts (or
gives up on the first recorded error) and publishes a single result to every
waiter.
"""

import concurrent.futures
import logging
import threading

from typing import Any, Callable, List, Optional
from typing_extensions import Self

from composite_upload import errors
from composite_upload.cleanup import CleanupRegistry
from composite_upload.cloud.base import RemoteSessionBase
from composite_upload.object_metadata import ObjectMetadata, PartMetadata
from composite_upload.stream_handle import AbstractCoordinator, StreamHandle

logger = logging.getLogger(__name__)

ComposeFunction = Callable[[List[PartMetadata]], ObjectMetadata]
SessionOpener = Callable[[Any], RemoteSessionBase]


class UploadCoordinator(AbstractCoordinator):
  """Aggregates the outcome of every part of a parallel upload.

  All mutable state is guarded by a single lock.  The compose call and the
  fulfillment of waiters happen outside the lock.

  The coordinator is also a context manager.  Leaving the "with" block waits
  until the final result has been published.
  """

  def __init__(self, compose_fn: ComposeFunction,
               cleanup: CleanupRegistry) -> None:
    self._lock = threading.Lock()
    self._compose_fn = compose_fn
    self._cleanup = cleanup
    self._cleanup_executed = False
    self._cleanup_error: Optional[Exception] = None

    self._outstanding_parts = 0
    self._next_shard_index = 0
    self._compose_sources: List[Optional[PartMetadata]] = []

    # Set once the outstanding count reaches zero.  Errors arriving after that
    # are discarded.
    self._finalizing = False
    self._finished = False

    self._error: Optional[Exception] = None
    self._result: Optional[ObjectMetadata] = None
    self._waiters: List[concurrent.futures.Future] = []

  def __enter__(self) -> Self:
    return self

  def __exit__(self, *unused_args) -> None:
    self.close()

  @property
  def outstanding_parts(self) -> int:
    with self._lock:
      return self._outstanding_parts

  @property
  def finished(self) -> bool:
    with self._lock:
      return self._finished

  def create_stream(self, session_opener: SessionOpener,
                    request: Any) -> StreamHandle:
    """Open a remote session and wrap it in a StreamHandle for the next shard.

    If the session cannot be opened, the error is recorded and re-raised, and
    no shard index is consumed.  Raises FailedPreconditionError once the
    upload has started finalizing.
    """
    self._check_not_finalizing()
    try:
      session = session_opener(request)
    except Exception as e:
      logger.debug('Failed to open a session for %r: %s', request, e)
      self.fail(e)
      raise

    with self._lock:
      # The session is never finalized, so abandoning it creates no object.
      if self._finalizing:
        raise self._finalizing_error()
      # Indices come from their own counter.  Streams are normally all created
      # before any of them closes, so this matches the outstanding count.
      shard_index = self._next_shard_index
      self._next_shard_index += 1
      self._outstanding_parts += 1
    return StreamHandle(self, shard_index, session)

  def report_part_result(self, shard_index: int,
                         metadata: Optional[PartMetadata] = None,
                         error: Optional[Exception] = None) -> None:
    with self._lock:
      assert self._outstanding_parts > 0, 'More results than streams!'
      self._outstanding_parts -= 1

      if error is not None:
        logger.debug('Shard %d failed: %s', shard_index, error)
        self._record_error(error)
      else:
        assert metadata is not None
        if len(self._compose_sources) <= shard_index:
          self._compose_sources.extend(
              [None] * (shard_index + 1 - len(self._compose_sources)))
        self._compose_sources[shard_index] = metadata
        self._cleanup.add(metadata)

      if self._outstanding_parts > 0:
        return

      # Only the call that brings the count to zero gets this far.
      self._finalizing = True
      sources = None
      if self._error is None:
        sources = [source for source in self._compose_sources
                   if source is not None]

    self._finalize(sources)

  def fail(self, error: Exception) -> None:
    """Record a failure.  Only the first one has any effect."""
    with self._lock:
      self._record_error(error)

  def finish_if_idle(self) -> None:
    """Finalize with the recorded error if no part is outstanding.

    Used when no stream could be created at all, so there is no part that could
    ever trigger finalization.
    """
    with self._lock:
      if self._finalizing or self._outstanding_parts > 0:
        return
      if self._error is None:
        self._error = errors.FailedPreconditionError(
            'Parallel upload finished without creating any streams')
      self._finalizing = True

    self._finalize(None)

  def wait_for_completion(self) -> concurrent.futures.Future:
    """Returns a future for the final ObjectMetadata or error.

    Every future returned by this method, before or after the upload finishes,
    resolves to the same value.
    """
    future: concurrent.futures.Future = concurrent.futures.Future()
    # Marking it running means callers can't cancel it out from under us.
    future.set_running_or_notify_cancel()

    with self._lock:
      if not self._finished:
        self._waiters.append(future)
        return future

    self._resolve(future)
    return future

  def eager_cleanup(self) -> None:
    """Delete every part that was created.

    Raises FailedPreconditionError if the upload is still in progress.  The
    delete happens at most once; later calls repeat its outcome.
    """
    with self._lock:
      if not self._finished:
        raise errors.FailedPreconditionError(
            'Attempted to cleanup parallel upload state while it is still in '
            'progress')

      # Make sure that only one thread actually deletes anything.
      if not self._cleanup_executed:
        self._cleanup_executed = True
        try:
          self._cleanup.execute_delete()
        except Exception as e:
          logger.info('Cleanup of temporary objects failed: %s', e)
          self._cleanup_error = e

      if self._cleanup_error is not None:
        raise self._cleanup_error

  def close(self) -> None:
    """Block until the final result has been published."""
    concurrent.futures.wait([self.wait_for_completion()])

  def _check_not_finalizing(self) -> None:
    with self._lock:
      if self._finalizing:
        raise self._finalizing_error()

  def _finalizing_error(self) -> errors.FailedPreconditionError:
    return errors.FailedPreconditionError(
        'Attempted to create a stream after the parallel upload finished')

  def _record_error(self, error: Exception) -> None:
    # Must be called with the lock held.
    if self._error is None and not self._finalizing:
      self._error = error

  def _finalize(self, sources: Optional[List[PartMetadata]]) -> None:
    result: Optional[ObjectMetadata] = None
    compose_error: Optional[Exception] = None

    # The compose call may be slow, so it runs without the lock.
    if sources is not None:
      logger.info('Composing %d parts', len(sources))
      try:
        result = self._compose_fn(sources)
      except Exception as e:
        compose_error = e

    with self._lock:
      if compose_error is not None:
        self._error = compose_error
      elif sources is not None:
        self._result = result
      self._finished = True
      waiters, self._waiters = self._waiters, []

    if self._error is not None:
      logger.info('Parallel upload failed: %s', self._error)
    else:
      logger.info('Parallel upload finished: %s', self._result)

    for waiter in waiters:
      self._resolve(waiter)

  def _resolve(self, future: concurrent.futures.Future) -> None:
    # Only called once finished, after which the result never changes.
    if self._error is not None:
      future.set_exception(self._error)
    else:
      future.set_result(self._result)
