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

"""Cloud storage providers for parallel uploads.

Base class definitions."""

import abc

from composite_upload.object_metadata import ObjectMetadata, PartMetadata


class RemoteSessionBase(object):
  @abc.abstractmethod
  def write(self, data: bytes) -> None:
    """Send data to the remote object.  Raises on transport failure."""
    pass

  @abc.abstractmethod
  def close(self) -> PartMetadata:
    """Finish the upload and return metadata for the created object."""
    pass


class CloudBackendBase(object):
  @property
  @abc.abstractmethod
  def destination(self) -> str:
    """The name of the final, composed object."""
    pass

  @abc.abstractmethod
  def open_session(self, object_name: str) -> RemoteSessionBase:
    """Start a resumable upload session for a new part object."""
    pass

  @abc.abstractmethod
  def compose(self, sources: list[PartMetadata],
              temp_prefix: str) -> ObjectMetadata:
    """Merge the sources, in order, into the destination object.

    Any intermediate objects are named with temp_prefix and deleted before
    this returns."""
    pass

  @abc.abstractmethod
  def delete(self, objects: list[PartMetadata]) -> None:
    """Delete the given part objects from cloud storage."""
    pass
