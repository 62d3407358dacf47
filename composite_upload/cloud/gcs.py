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

"""Parallel uploads to Google Cloud Storage."""

import logging
import urllib.parse

from typing import Optional

import google.cloud.storage  # type: ignore
import google.api_core.exceptions  # type: ignore

from composite_upload.cloud.base import CloudBackendBase, RemoteSessionBase
from composite_upload.object_metadata import ObjectMetadata, PartMetadata

logger = logging.getLogger(__name__)


# GCS refuses to compose more than this many sources in a single request.
MAX_COMPOSE_SOURCES = 32


class GCSWriteSession(RemoteSessionBase):
  """A resumable upload session for one part object."""

  def __init__(self, blob: google.cloud.storage.Blob,
               chunk_size: Optional[int] = None) -> None:
    self._blob = blob
    # A file-like interface to the blob, backed by a resumable upload.
    self._output = blob.open(
        'wb', chunk_size=chunk_size,
        retry=google.cloud.storage.retry.DEFAULT_RETRY)

  def write(self, data: bytes) -> None:
    self._output.write(data)

  def close(self) -> PartMetadata:
    self._output.close()
    # Pick up the generation assigned by the server.
    self._blob.reload()
    return PartMetadata(self._blob.name, self._blob.generation, self._blob.size)


class GCSBackend(CloudBackendBase):
  """See base class for interface docs."""

  def __init__(self, upload_location: str,
               chunk_size: Optional[int] = None) -> None:
    # Parse the upload location (URL).
    url = urllib.parse.urlparse(upload_location)

    self._client = google.cloud.storage.Client()
    # If upload_location is "gs://foo/bar", url.netloc is "foo", which is the
    # bucket name.
    self._bucket = self._client.bucket(url.netloc)

    # Strip both left and right slashes.  Otherwise, we get a blank folder name.
    self._destination = url.path.strip('/')
    if not self._destination:
      raise ValueError(
          'No object name in upload location {}'.format(upload_location))

    # Must be a multiple of 256KiB if set.  None lets the library choose.
    self._chunk_size = chunk_size

  @property
  def destination(self) -> str:
    return self._destination

  def open_session(self, object_name: str) -> GCSWriteSession:
    blob = self._bucket.blob(object_name)
    return GCSWriteSession(blob, self._chunk_size)

  def compose(self, sources: list[PartMetadata],
              temp_prefix: str) -> ObjectMetadata:
    temporaries: list[PartMetadata] = []
    try:
      level = 0
      # Compose groups of sources into intermediate objects until few enough
      # remain for a single request.
      while len(sources) > MAX_COMPOSE_SOURCES:
        next_level: list[PartMetadata] = []
        for start in range(0, len(sources), MAX_COMPOSE_SOURCES):
          name = '{}compose_{}_{}'.format(
              temp_prefix, level, start // MAX_COMPOSE_SOURCES)
          blob = self._compose_one(
              name, sources[start:start + MAX_COMPOSE_SOURCES])
          part = PartMetadata(blob.name, blob.generation, blob.size)
          temporaries.append(part)
          next_level.append(part)
        sources = next_level
        level += 1

      destination = self._compose_one(self._destination, sources)
    finally:
      if temporaries:
        try:
          self.delete(temporaries)
        except google.api_core.exceptions.GoogleAPICallError as e:
          logger.warning('Failed to delete intermediate objects: %s', e)

    return ObjectMetadata(destination.name, destination.generation,
                          destination.size, destination.component_count)

  def delete(self, objects: list[PartMetadata]) -> None:
    first_error: Optional[Exception] = None
    for metadata in objects:
      try:
        self._bucket.delete_blob(
            metadata.name, generation=metadata.generation,
            retry=google.cloud.storage.retry.DEFAULT_RETRY)
      except google.api_core.exceptions.NotFound:
        # Already gone, which is what we wanted.
        pass
      except google.api_core.exceptions.GoogleAPICallError as e:
        logger.debug('Failed to delete %s: %s', metadata.name, e)
        if first_error is None:
          first_error = e

    # Try every object before reporting a failure.
    if first_error is not None:
      raise first_error

  def _compose_one(self, name: str,
                   sources: list[PartMetadata]) -> google.cloud.storage.Blob:
    source_blobs = [self._bucket.blob(source.name, generation=source.generation)
                    for source in sources]
    destination = self._bucket.blob(name)
    destination.compose(
        source_blobs,
        if_source_generation_match=[source.generation for source in sources],
        retry=google.cloud.storage.retry.DEFAULT_RETRY)
    return destination
