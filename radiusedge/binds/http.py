"""HTTP calls for api_call steps built on requests."""

import json
import logging
import re

import requests

from radiusedge import helpers
from radiusedge.binds import HttpBind
from radiusedge.settings import clone_global_settings

logger = logging.getLogger(__name__)

RULE_OPERATORS = ("equals", "contains", "exists", "matches")


class RequestsBind(HttpBind):
    """Default runtime for api_call steps."""

    def __init__(self, bind_settings=None):
        self._settings = bind_settings or clone_global_settings()
        self.session = requests.session()

    def request(self, url, method="GET", headers=None, body=None):
        """Send a request; transport failures are reported through Result.error.

        Dict and list bodies are sent as JSON, anything else as the raw request body.
        """
        kwargs = {
            "headers": headers or {},
            "timeout": self._settings.HTTP.TIMEOUT,
            "verify": self._settings.HTTP.VERIFY,
        }
        if isinstance(body, dict | list):
            kwargs["json"] = body
        elif body is not None:
            kwargs["data"] = body
        try:
            response = self.session.request(method.upper(), url, **kwargs)
        except requests.exceptions.RequestException as err:
            return helpers.Result(status_code=None, headers={}, data=None, error=str(err))
        try:
            data = response.json()
        except ValueError:
            data = response.text
        return helpers.Result(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=data,
            error=None,
        )

    def validate_response(self, response, expected_status=None, rules=None):
        """Check a response against expected statuses and body rules.

        Args:
            response: Result returned by request()
            expected_status: An int or a list of ints. When omitted any status below 400 passes.
            rules: List of dicts with ``path`` (dotted path into the JSON body),
                ``operator`` (equals, contains, exists or matches) and ``value``

        Returns:
            Tuple of (passed, reason or None)
        """
        status = response.status_code
        if expected_status in (None, "", []):
            if status is None or status >= 400:
                return False, f"Status {status} indicates an error"
        else:
            if not isinstance(expected_status, list | tuple):
                expected_status = [expected_status]
            allowed = [int(code) for code in expected_status]
            if status not in allowed:
                return False, f"Status {status} not in expected {allowed}"
        for rule in rules or ():
            passed, reason = self._check_rule(response.data, rule)
            if not passed:
                return False, reason
        return True, None

    def _check_rule(self, data, rule):
        path = str(rule.get("path", ""))
        operator = rule.get("operator", "equals")
        expected = rule.get("value")
        if operator not in RULE_OPERATORS:
            return False, f"Unknown validation operator {operator!r} for {path!r}"
        try:
            actual = helpers.dotted_get(data, path) if path else data
        except KeyError:
            if operator == "exists" and expected in (False, "false"):
                return True, None
            return False, f"Path {path!r} not found in response"
        if operator == "exists":
            if expected in (False, "false"):
                return False, f"Path {path!r} exists but was expected to be absent"
            return True, None
        if operator == "equals":
            passed = actual == expected or str(actual) == str(expected)
        elif operator == "contains":
            if isinstance(actual, list):
                passed = str(expected) in [str(item) for item in actual]
            else:
                haystack = actual if isinstance(actual, str) else json.dumps(actual, default=str)
                passed = str(expected) in haystack
        else:
            passed = re.search(str(expected), str(actual)) is not None
        if passed:
            return True, None
        return False, f"{path!r} {operator} {expected!r} failed (actual: {actual!r})"
