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

"""Command-line front end for parallel composite uploads."""

import argparse
import logging
import sys

from typing import List, Optional

import google.api_core.exceptions  # type: ignore

from composite_upload import __version__
from composite_upload import errors
from composite_upload.cloud import uploader
from composite_upload.configuration import ConfigError
from composite_upload.parallel_upload import parallel_upload_file
from composite_upload.upload_configuration import ParallelUploadConfig


DESCRIPTION = """
Upload a large file to cloud storage as parallel parts, then compose the parts
into one object.

The optional config file is YAML, with any of these fields:
  max_streams, min_stream_size, upload_buffer_size,
  ignore_cleanup_failures, shard_prefix
"""


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
  parser = argparse.ArgumentParser(
      description=DESCRIPTION,
      formatter_class=argparse.RawDescriptionHelpFormatter)
  parser.add_argument('source', help='The local file to upload')
  parser.add_argument('destination',
                      help='The destination object, such as gs://bucket/name')
  parser.add_argument('-c', '--config',
                      help='The path to a YAML config file')
  parser.add_argument('-v', '--verbose', action='store_true',
                      help='Log the progress of every part')
  parser.add_argument('--version', action='version', version=__version__)
  return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
  args = parse_args(argv)

  logging.basicConfig(
      level=logging.DEBUG if args.verbose else logging.INFO,
      format='%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s')

  try:
    config = ParallelUploadConfig.from_yaml(args.config)
  except (ConfigError, OSError) as e:
    print('Invalid config file {}: {}'.format(args.config, e), file=sys.stderr)
    return 1

  try:
    backend = uploader.create(args.destination)
    metadata = parallel_upload_file(args.source, backend, config)
  except (errors.UploadError, google.api_core.exceptions.GoogleAPICallError,
          OSError, RuntimeError, ValueError) as e:
    print('Upload failed: {}'.format(e), file=sys.stderr)
    return 1

  print('Uploaded {} (generation {}, {} bytes)'.format(
      metadata.name, metadata.generation, metadata.size))
  return 0
