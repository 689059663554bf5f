"""Dictionary manipulation utilities."""

from collections.abc import MutableMapping
from copy import deepcopy


def clean_dict(in_dict):
    """Remove entries from a dict where value is None."""
    return {k: v for k, v in in_dict.items() if v is not None}


def merge_dicts(dict1, dict2):
    """Merge two nested dictionaries together, values from dict2 winning on conflict.

    :return: merged dictionary
    """
    if not isinstance(dict1, MutableMapping) or not isinstance(dict2, MutableMapping):
        return deepcopy(dict2)
    merged = {key: deepcopy(value) for key, value in clean_dict(dict1).items()}
    for key, value in clean_dict(dict2).items():
        merged[key] = merge_dicts(merged[key], value) if key in merged else deepcopy(value)
    return merged


def dotted_get(data, path, sep="."):
    """Walk a nested structure of dicts and lists using a dotted path.

    Example:
        dotted_get({"a": {"b": [10, 20]}}, "a.b.1") returns 20

    Raises:
        KeyError: If any part of the path is missing
    """
    current = data
    for part in str(path).split(sep):
        if isinstance(current, MutableMapping) and part in current:
            current = current[part]
        elif isinstance(current, list | tuple) and part.lstrip("-").isdigit():
            try:
                current = current[int(part)]
            except IndexError as err:
                raise KeyError(path) from err
        else:
            raise KeyError(path)
    return current
