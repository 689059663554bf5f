import random

import pytest

from radiusedge.models import ScenarioVariable, VariableKind
from radiusedge.variables import VariableResolver


@pytest.fixture
def resolver(radiusedge_settings):
    return VariableResolver(radiusedge_settings, rng=random.Random(1234))


@pytest.mark.parametrize(
    "variable",
    [
        ScenarioVariable("imsi", "static", "001010123456789"),
        ScenarioVariable("nas", "list", "nas-1,nas-2"),
        ScenarioVariable("empty", "static", ""),
        ScenarioVariable("port", "static", 1812),
    ],
)
def test_static_and_list_resolve_to_value(resolver, variable):
    assert resolver.resolve("${" + variable.name + "}", [variable]) == str(variable.value)


def test_missing_placeholder_is_left_alone(resolver):
    assert resolver.resolve("${missing}", []) == "${missing}"
    assert resolver.resolve("user ${missing} ok", [ScenarioVariable("x", value="1")]) == (
        "user ${missing} ok"
    )


def test_only_braced_form_is_substituted(resolver):
    variables = [ScenarioVariable("name", value="alice")]
    text = "$name $$ ${name} ${ {name} $"
    assert resolver.resolve(text, variables) == "$name $$ alice ${ {name} $"


def test_none_and_non_strings(resolver):
    assert resolver.resolve(None) == ""
    assert resolver.resolve(42) == "42"


def test_mapping_variables(resolver):
    assert resolver.resolve("${a}-${b}", {"a": "x", "b": 2}) == "x-2"


def test_random_string_is_fresh_per_occurrence(resolver):
    variables = [ScenarioVariable("sid", VariableKind.RANDOM_STRING, "sess_")]
    first, second = resolver.resolve("${sid}|${sid}", variables).split("|")
    assert first.startswith("sess_") and second.startswith("sess_")
    assert len(first) == len("sess_") + 8
    assert first != second


def test_random_string_specs(resolver):
    assert len(resolver.generate(ScenarioVariable("a", "random_string", "12"))) == 12
    default = resolver.generate(ScenarioVariable("b", "random_string", ""))
    assert default.startswith("rand_str_")
    assert len(default) == len("rand_str_") + 8


@pytest.mark.parametrize(
    ("spec", "low", "high"),
    [("10-20", 10, 20), ("20-10", 10, 20), ("5", 0, 4), ("", 0, 99), ("junk", 0, 99)],
)
def test_random_number_ranges(resolver, spec, low, high):
    variable = ScenarioVariable("n", "random_number", spec)
    for _ in range(50):
        assert low <= int(resolver.generate(variable)) <= high


def test_resolve_data_keeps_scalars(resolver):
    data = {"user": "${imsi}", "count": 3, "flags": [True, "${imsi}"], "${imsi}": None}
    resolved = resolver.resolve_data(data, [ScenarioVariable("imsi", value="0011")])
    assert resolved == {"user": "0011", "count": 3, "flags": [True, "0011"], "0011": None}


def test_unknown_variable_kind_rejected():
    from radiusedge.exceptions import ConfigurationError

    with pytest.raises(ConfigurationError):
        ScenarioVariable("x", "sequence", "1")
