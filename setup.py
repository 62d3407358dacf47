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

import setuptools

import composite_upload

with open('README.md', 'r') as f:
  long_description = f.read()

setuptools.setup(
  name='composite-upload',
  version=composite_upload.__version__,
  author='Google',
  description='Parallel composite uploads of large files to cloud storage.',
  long_description=long_description,
  long_description_content_type='text/markdown',
  packages=setuptools.find_packages(exclude=['tests', 'tests.*']),
  install_requires=[
      'PyYAML',
      'google-cloud-storage>=2.0',
      'typing_extensions',
  ],
  extras_require={
      'test': [
          'pytest',
          'pytest-mock',
      ],
  },
  scripts=['composite-upload'],
  classifiers=[
      'Programming Language :: Python :: 3',
      'License :: OSI Approved :: Apache Software License',
      'Operating System :: POSIX :: Linux',
      'Operating System :: MacOS :: MacOS X',
      'Operating System :: Microsoft :: Windows',
  ],
  python_requires='>=3.9',
)
