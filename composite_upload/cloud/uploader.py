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

"""Pick a cloud storage backend for an upload location."""

from typing import Optional

from composite_upload.cloud.base import CloudBackendBase


# Supported protocols.  Built based on which optional modules are available for
# cloud storage providers.
SUPPORTED_PROTOCOLS: list[str] = []


# All protocols with compose support.  Used to provide more useful error
# messages.
ALL_SUPPORTED_PROTOCOLS: list[str] = ['gs']


# Try to load the GCS (Google Cloud Storage) backend.  If we can, the user has
# the libraries needed for GCS support.
try:
  from composite_upload.cloud.gcs import GCSBackend
  SUPPORTED_PROTOCOLS.append('gs')
except ImportError:
  pass


def create(upload_location: str,
           chunk_size: Optional[int] = None) -> CloudBackendBase:
  """Create a backend appropriate to the upload location URL."""

  if upload_location.startswith('gs://'):
    if 'gs' not in SUPPORTED_PROTOCOLS:
      raise RuntimeError(
          'Uploading to {} requires google-cloud-storage'.format(
              upload_location))
    return GCSBackend(upload_location, chunk_size)
  else:
    raise RuntimeError('Protocol of {} isn\'t supported (use one of {})'.format(
        upload_location, ', '.join(ALL_SUPPORTED_PROTOCOLS)))
