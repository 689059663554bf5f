"""Miscellaneous helpers live here.

The helpers are organized into submodules by functionality:
- dict_utils: Dictionary manipulation utilities
- file_utils: File handling utilities
- results: The Result class returned by collaborators
- misc: Miscellaneous helper functions
"""

from radiusedge.helpers.dict_utils import clean_dict, dotted_get, merge_dicts
from radiusedge.helpers.file_utils import FileLock, load_file, save_file, yaml, yaml_format
from radiusedge.helpers.misc import (
    dictlist_to_table,
    parse_key_value_pairs,
    simple_retry,
    update_log_level,
)
from radiusedge.helpers.results import Result

__all__ = [
    "FileLock",
    "Result",
    "clean_dict",
    "dictlist_to_table",
    "dotted_get",
    "load_file",
    "merge_dicts",
    "parse_key_value_pairs",
    "save_file",
    "simple_retry",
    "update_log_level",
    "yaml",
    "yaml_format",
]
