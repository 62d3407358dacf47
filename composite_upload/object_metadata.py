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

"""Metadata describing objects in cloud storage."""

from typing import NamedTuple, Optional


class PartMetadata(NamedTuple):
  """A finished part.  (name, generation) identifies it as a compose source."""

  name: str
  generation: Optional[int]
  size: Optional[int] = None


class ObjectMetadata(NamedTuple):
  """The final object produced by composing all the parts."""

  name: str
  generation: Optional[int]
  size: Optional[int] = None
  component_count: Optional[int] = None
