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

"""A small declarative config system.

Config classes declare their fields at the class level, and the Base
constructor validates an input dictionary (usually parsed from YAML) against
those declarations.
"""

import abc
import enum

from typing import Any, Dict, Generic, Optional, Type, TypeVar, cast


class ConfigError(Exception):
  """A base class for config errors.

  Each subclass provides a meaningful, human-readable string representation in
  English.
  """

  def __init__(self, class_ref, field_name, field):
    self.class_ref = class_ref
    """A reference to the config class that the error refers to."""

    self.class_name = class_ref.__name__
    """The name of the config class that the error refers to."""

    self.field_name = field_name
    """The name of the field that the error refers to."""

    self.field = field
    """The Field metadata object that the error refers to."""


class UnrecognizedField(ConfigError):
  """Raised for a key in the input that no field declares."""

  def __str__(self):
    return '{} contains unrecognized field: {}'.format(
        self.class_name, self.field_name)


class WrongType(ConfigError):
  """Raised when a value in the input is not of the field's type."""

  def __str__(self):
    return 'In {}, {} field requires a {}'.format(
        self.class_name, self.field_name, self.field.get_type_name())


class MissingRequiredField(ConfigError):
  """Raised when the input omits a required field."""

  def __str__(self):
    return '{} is missing a required field: {}, a {}'.format(
        self.class_name, self.field_name, self.field.get_type_name())


class MalformedField(ConfigError):
  """Raised when a value has the right type but fails validation."""

  def __init__(self, class_ref, field_name, field, reason):
    super().__init__(class_ref, field_name, field)
    self.reason = reason

  def __str__(self):
    return 'In {}, {} field is malformed: {}'.format(
        self.class_name, self.field_name, self.reason)


class ValidatingType(metaclass=abc.ABCMeta):
  """A pseudo-type for fields whose values must fall in a limited range.

  Subclasses implement validate(), which raises TypeError for a value of the
  wrong type and ValueError for a value out of range, and name(), a
  human-readable name for error messages.
  """

  @staticmethod
  @abc.abstractmethod
  def validate(value: Any) -> None:
    pass

  @staticmethod
  @abc.abstractmethod
  def name() -> str:
    pass


class PositiveInt(ValidatingType, int):
  """Use in Field() to require an integer greater than zero."""

  @staticmethod
  def name() -> str:
    return 'positive integer'

  @staticmethod
  def validate(value):
    # bool is a subclass of int, but "true" is not a size.
    if type(value) is not int:
      raise TypeError()
    if value <= 0:
      raise ValueError('must be greater than zero')


FieldType = TypeVar('FieldType')

class Field(Generic[FieldType]):
  """Metadata about one config field."""

  def __init__(self,
               type: Optional[Type[FieldType]],
               required: bool = False,
               default: Optional[FieldType] = None) -> None:
    self.type = type
    self.required = required
    self.default = default

  def get_type_name(self) -> str:
    if self.type is None:
      return 'None'
    if self.type is str:
      return 'string'
    if self.type is bool:
      return 'boolean'
    if issubclass(self.type, enum.Enum):
      options = [repr(str(member.value)) for member in self.type]
      return '{} (one of {})'.format(self.type.__name__, ', '.join(options))
    if issubclass(self.type, ValidatingType):
      return self.type.name()
    return self.type.__name__

  def cast(self) -> FieldType:
    """Tell mypy that instances see the field's value, not the Field.

    The Base constructor replaces each class-level Field with a value of type
    FieldType on the instance.  Returning self with a cast type keeps mypy in
    agreement with that.
    """
    return cast(FieldType, self)


class Base(object):
  """A base class for config objects.

  Subclasses declare class-level Field objects.  The constructor type-checks
  the input dictionary, rejects unknown keys, and fills in defaults.
  """

  def __init__(self, dictionary: Dict[str, Any]) -> None:
    config_fields = {}
    for key, field in self.__class__.__dict__.items():
      if isinstance(field, Field):
        config_fields[key] = field

    for key, value in dictionary.items():
      field = config_fields.get(key)
      if not field:
        raise UnrecognizedField(self.__class__, key, Field(None))
      setattr(self, key, self._check_and_convert_type(field, key, value))

    for key, field in config_fields.items():
      if key not in dictionary:
        if field.required:
          raise MissingRequiredField(self.__class__, key, field)
        setattr(self, key, field.default)

  def _check_and_convert_type(self, field: Field, key: str, value: Any) -> Any:
    """Check the type of |value| against |field|, converting where allowed.

    There is no general type coercion.  A string "False" must not turn into
    boolean True.
    """
    assert field.type is not None, 'No type info for Field {}'.format(key)

    if issubclass(field.type, enum.Enum):
      try:
        return field.type(value)
      except ValueError:
        raise WrongType(self.__class__, key, field) from None

    if issubclass(field.type, ValidatingType):
      try:
        field.type.validate(value)
      except TypeError:
        raise WrongType(self.__class__, key, field) from None
      except ValueError as e:
        raise MalformedField(self.__class__, key, field, str(e)) from None
      return value

    # YAML turns unquoted numbers and booleans into non-strings.  Accept them
    # where a string is wanted.
    if field.type is str:
      if isinstance(value, (bool, float, int, str)):
        return str(value)
      raise WrongType(self.__class__, key, field)

    if not isinstance(value, field.type):
      raise WrongType(self.__class__, key, field)
    return value
