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

"""Top-level module API.

parallel_upload_file() splits a file into shards, uploads each shard from its
own thread, and composes the results into one object.
"""

import base64
import concurrent.futures
import logging
import os
import threading

from typing import List, Optional, Tuple

from composite_upload import errors
from composite_upload.cleanup import CleanupRegistry
from composite_upload.cloud.base import CloudBackendBase
from composite_upload.coordinator import UploadCoordinator
from composite_upload.object_metadata import ObjectMetadata
from composite_upload.shard_upload_task import ShardUploadTask
from composite_upload.upload_configuration import ParallelUploadConfig

logger = logging.getLogger(__name__)


def create_upload_shards(file_size: int,
                         max_streams: int,
                         min_stream_size: int) -> List[Tuple[int, int]]:
  """Split a file into (offset, length) ranges.

  Every shard is at least min_stream_size bytes, except when the whole file is
  smaller than that.  There are at most max_streams shards and always at least
  one, even for an empty file.  The last shard absorbs the remainder.
  """
  num_streams = max(1, min(max_streams, file_size // min_stream_size))
  stream_size = max(1, file_size // num_streams)

  shards = []
  offset = 0
  for i in range(num_streams):
    if i == num_streams - 1:
      length = file_size - offset
    else:
      length = min(stream_size, file_size - offset)
    shards.append((offset, length))
    offset += length
  return shards


def default_shard_prefix(destination: str) -> str:
  """A prefix for part names that won't collide with other uploads."""
  random_id = base64.b16encode(os.urandom(8)).decode('UTF-8').lower()
  return '{}.upload_shard_{}_'.format(destination, random_id)


def _upload_shard(task: ShardUploadTask) -> None:
  """Target for each shard's thread."""
  try:
    task.upload()
  except Exception as e:
    # The coordinator already has this, or a more detailed cause.
    logger.debug('Shard upload failed: %s', e)


def parallel_upload_file(file_name: str,
                         backend: CloudBackendBase,
                         config: Optional[ParallelUploadConfig] = None
                         ) -> ObjectMetadata:
  """Upload a local file to backend.destination using parallel parts.

  :raises: :class:`composite_upload.errors.NotFoundError` if the file is
           missing.
  :raises: The first error from any part, or the error from compose.
  :raises: The cleanup error, if temporary parts could not be deleted and
           config.ignore_cleanup_failures is false.
  """
  if config is None:
    config = ParallelUploadConfig({})

  try:
    file_size = os.path.getsize(file_name)
  except OSError:
    raise errors.NotFoundError(
        'cannot open upload file source {}'.format(file_name)) from None

  shards = create_upload_shards(
      file_size, config.max_streams, config.min_stream_size)
  prefix = config.shard_prefix or default_shard_prefix(backend.destination)
  logger.info('Uploading %s (%d bytes) to %s in %d parts',
              file_name, file_size, backend.destination, len(shards))

  coordinator = UploadCoordinator(
      lambda sources: backend.compose(sources, prefix),
      CleanupRegistry(backend.delete))

  threads: List[threading.Thread] = []
  with coordinator:
    # Every stream must exist before any of them closes, or the outstanding
    # count could reach zero early.
    tasks: List[ShardUploadTask] = []
    try:
      for i, (offset, length) in enumerate(shards):
        stream = coordinator.create_stream(
            backend.open_session, '{}{}'.format(prefix, i))
        tasks.append(ShardUploadTask(coordinator, stream, file_name, offset,
                                     length, config.upload_buffer_size))
    except Exception as e:
      # Already recorded by the coordinator.  Let it finish without uploading.
      logger.info('Could not open all upload sessions: %s', e)
      for task in tasks:
        task.abandon()
      coordinator.finish_if_idle()
      tasks = []

    for i, task in enumerate(tasks):
      thread = threading.Thread(
          target=_upload_shard, args=(task,),
          name='upload-shard-{}'.format(i))
      try:
        thread.start()
      except Exception as e:
        # Shards without a running thread would never close their streams.
        logger.warning('Could not start thread for shard %d: %s', i, e)
        coordinator.fail(e)
        for unstarted in tasks[i:]:
          unstarted.abandon()
        break
      threads.append(thread)
    del tasks

    future = coordinator.wait_for_completion()
    concurrent.futures.wait([future])

  for thread in threads:
    thread.join()

  try:
    coordinator.eager_cleanup()
  except Exception as e:
    if not config.ignore_cleanup_failures:
      raise
    logger.warning('Ignoring failure to delete temporary parts: %s', e)

  return future.result()
