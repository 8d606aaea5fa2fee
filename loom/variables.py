"""
Variable binder - binds declared variables to supplied values.
"""

from typing import Dict, Iterator, Mapping, Optional
from dataclasses import dataclass
import logging

from .errors import MissingRequiredVariableError, UnknownVariableError
from .manifest import Variable


logger = logging.getLogger("loom.variables")

REDACTED = "<redacted>"


@dataclass(frozen=True)
class BoundValue:
    """
    A variable value tagged with its secrecy.

    Equality compares the real value; ``repr`` and ``display`` never show a
    secret.
    """

    value: str
    secret: bool = False

    @property
    def display(self) -> str:
        return REDACTED if self.secret else self.value

    def __repr__(self) -> str:
        return f"BoundValue({self.display!r}, secret={self.secret})"


class BoundEnvironment(Mapping[str, BoundValue]):
    """Read-only name -> BoundValue mapping produced by the binder."""

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Dict[str, BoundValue]] = None):
        self._values = dict(sorted((values or {}).items()))

    def __getitem__(self, name: str) -> BoundValue:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def value(self, name: str) -> str:
        """Full value, secrets included. For the execution host only."""
        return self._values[name].value

    def is_secret(self, name: str) -> bool:
        return self._values[name].secret

    def to_dict(self, *, redact: bool = True) -> Dict[str, str]:
        """Plain mapping; secrets are redacted unless ``redact`` is False."""
        return {
            name: bound.display if redact else bound.value
            for name, bound in self._values.items()
        }

    def __repr__(self) -> str:
        return f"BoundEnvironment({self.to_dict()!r})"


class VariableBinder:
    """
    Resolves declared variables against externally supplied values.

    - supplied value wins, then the declared default
    - required variables without a value fail
    - supplied names the manifest does not declare fail
    """

    def bind(
        self,
        declared: Mapping[str, Variable],
        supplied: Optional[Mapping[str, Optional[str]]] = None,
    ) -> BoundEnvironment:
        """
        Bind variables.

        Args:
            declared: Variables declared by the manifest
            supplied: External values; a None value counts as absent

        Returns:
            BoundEnvironment of every declared variable

        Raises:
            UnknownVariableError: If a supplied name is not declared
            MissingRequiredVariableError: If a required variable has no value
        """
        supplied = supplied or {}

        for name in sorted(supplied):
            if name not in declared:
                raise UnknownVariableError(name, declared=sorted(declared))

        bound: Dict[str, BoundValue] = {}
        for name in sorted(declared):
            variable = declared[name]
            value = supplied.get(name)

            if value is None:
                if variable.required:
                    raise MissingRequiredVariableError(name)
                value = variable.default
                logger.debug("Variable %s: using default", name)
            else:
                logger.debug("Variable %s: using supplied value", name)

            bound[name] = BoundValue(value=str(value), secret=variable.secret)

        return BoundEnvironment(bound)
