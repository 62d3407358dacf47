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

from typing import Any, Dict, Optional

import yaml

from . import configuration


MiB = 1 << 20


class ParallelUploadConfig(configuration.Base):
  """An object representing the tuning of a parallel upload."""

  max_streams = configuration.Field(
      configuration.PositiveInt, default=64).cast()
  """The most parts a file will be split into."""

  min_stream_size = configuration.Field(
      configuration.PositiveInt, default=64 * MiB).cast()
  """The smallest part worth uploading on its own, in bytes.

  Files smaller than twice this size are uploaded as a single part."""

  upload_buffer_size = configuration.Field(
      configuration.PositiveInt, default=8 * MiB).cast()
  """How many bytes each shard reads from the file at a time."""

  ignore_cleanup_failures = configuration.Field(bool, default=False).cast()
  """If true, failing to delete temporary parts does not fail the upload."""

  shard_prefix = configuration.Field(str, default='').cast()
  """A prefix for the names of the temporary part objects.

  If empty, a random prefix based on the destination name is used."""

  @staticmethod
  def from_yaml(path: Optional[str]) -> 'ParallelUploadConfig':
    """Load a config file.  With no path, returns the defaults."""
    dictionary: Dict[str, Any] = {}
    if path:
      with open(path) as f:
        dictionary = yaml.safe_load(f) or {}
    return ParallelUploadConfig(dictionary)
