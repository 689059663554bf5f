"""Placeholder substitution for scenario variables.

Only the braced form ``${name}`` is a placeholder. Bare ``$name``, ``$$`` and
unmatched braces are left alone, as are placeholders whose name is not declared.
Random variables produce a fresh value for every placeholder they fill, so
``"${id}-${id}"`` with a random_string ``id`` yields two different tokens.
"""

from collections.abc import Mapping
import logging
import random
import re
import string

from radiusedge.models import ScenarioVariable, VariableKind
from radiusedge.settings import clone_global_settings

logger = logging.getLogger(__name__)

_ALPHABET = string.ascii_lowercase + string.digits
_RANGE = re.compile(r"^(?P<low>-?\d+)\s*-\s*(?P<high>-?\d+)$")


class PlaceholderTemplate(string.Template):
    """A string.Template that only recognizes ``${name}``."""

    pattern = r"""
    \$(?:
      (?P<escaped>(?!))         |
      (?P<named>(?!))           |
      {(?P<braced>[^{}]+)}      |
      (?P<invalid>(?!))
    )
    """


class _VariableLookup(Mapping):
    """Mapping handed to the template; random values are generated per lookup."""

    def __init__(self, variables, resolver):
        self._variables = variables
        self._resolver = resolver

    def __getitem__(self, name):
        return self._resolver.generate(self._variables[name])

    def __iter__(self):
        return iter(self._variables)

    def __len__(self):
        return len(self._variables)


class VariableResolver:
    """Substitute ``${name}`` placeholders with scenario variable values.

    Args:
        resolver_settings: Optional settings object to use instead of global settings
        rng: Optional random.Random instance, mainly for reproducible tests
    """

    def __init__(self, resolver_settings=None, rng=None):
        self._settings = resolver_settings or clone_global_settings()
        self._rng = rng or random.SystemRandom()

    @staticmethod
    def _index(variables):
        if isinstance(variables, Mapping):
            index = {}
            for name, value in variables.items():
                if not isinstance(value, ScenarioVariable):
                    value = ScenarioVariable(name, value=value)
                index[name] = value
            return index
        return {var.name: var for var in variables or ()}

    def resolve(self, template, variables=()):
        """Return ``template`` with every known placeholder substituted.

        Args:
            template: The text to resolve; non-string values are converted with str()
            variables: Iterable of ScenarioVariable, or a mapping of name to value

        Returns:
            The resolved string
        """
        if template is None:
            return ""
        if not isinstance(template, str):
            template = str(template)
        if "${" not in template:
            return template
        return PlaceholderTemplate(template).safe_substitute(
            _VariableLookup(self._index(variables), self)
        )

    def resolve_data(self, data, variables=()):
        """Recursively resolve every string inside dicts and lists.

        Non-string scalars are returned unchanged so numbers and booleans keep their type.
        """
        index = self._index(variables)
        return self._resolve_data(data, index)

    def _resolve_data(self, data, index):
        if isinstance(data, str):
            return self.resolve(data, index)
        if isinstance(data, dict):
            return {
                self._resolve_data(key, index): self._resolve_data(value, index)
                for key, value in data.items()
            }
        if isinstance(data, list | tuple):
            return [self._resolve_data(item, index) for item in data]
        return data

    def generate(self, variable):
        """Produce the substitution value for one placeholder occurrence."""
        if variable.kind is VariableKind.RANDOM_STRING:
            return self._random_string(variable.value)
        if variable.kind is VariableKind.RANDOM_NUMBER:
            return str(self._random_number(variable.value))
        return str(variable.value)

    def _random_string(self, spec):
        """Return a random token.

        A numeric spec is the token length, any other non-empty spec is a prefix
        for a token of the default length, and an empty spec gives ``rand_str_<token>``.
        """
        length = int(self._settings.VARIABLES.RANDOM_STRING_LENGTH)
        spec = str(spec).strip()
        prefix = "rand_str_"
        if spec.isdigit() and int(spec) > 0:
            length, prefix = int(spec), ""
        elif spec:
            prefix = spec
        return prefix + "".join(self._rng.choice(_ALPHABET) for _ in range(length))

    def _random_number(self, spec):
        """Return a random integer.

        ``"N"`` draws from [0, N), ``"lo-hi"`` draws from [lo, hi] and an empty
        spec draws from [0, VARIABLES.RANDOM_NUMBER_MAX).
        """
        spec = str(spec).strip()
        upper = int(self._settings.VARIABLES.RANDOM_NUMBER_MAX)
        if match := _RANGE.match(spec):
            low, high = int(match["low"]), int(match["high"])
            return self._rng.randint(min(low, high), max(low, high))
        if spec.isdigit():
            upper = int(spec)
        elif spec:
            logger.warning(f"Ignoring unparsable random_number range {spec!r}")
        return self._rng.randrange(max(upper, 1))
