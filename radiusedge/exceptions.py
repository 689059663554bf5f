"""A collection of RadiusEdge-specific exceptions.

Step and preamble failures are raised as ConnectionError, ValidationError or
ConfigurationError. They all halt the run the same way and only differ in the
tag written to the run log.
"""

import logging

logger = logging.getLogger(__name__)


class RadiusEdgeError(Exception):
    """Base class for RadiusEdge exceptions."""

    error_code = 1

    def __init__(self, message="An unhandled exception occured!"):
        if logger.isEnabledFor(logging.DEBUG) and isinstance(message, Exception):
            logger.exception(message)
        self.message = message
        super().__init__(message)
        logger.error(f"{self.__class__.__name__}: {self.message}")

    @property
    def tag(self):
        """Return the label used when this error is written to a run log."""
        return self.__class__.__name__


class ConnectionError(RadiusEdgeError):
    """Raised when a collaborator fails at the transport level (SSH, SQL, RADIUS, HTTP)."""

    error_code = 3


class ValidationError(RadiusEdgeError):
    """Raised when a result does not match what a step or command expected."""

    error_code = 4


class CancellationError(RadiusEdgeError):
    """Raised when an abort request is observed at a step or command boundary."""

    error_code = 5


class ScenarioError(RadiusEdgeError):
    """Raised when a scenario or profile file cannot be found, parsed or validated."""

    error_code = 6

    def __init__(self, message="Unspecified scenario error", path=None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message=message)


class ExecutionError(RadiusEdgeError):
    """Raised when the execution engine is used in a way its state does not allow."""

    error_code = 7


class ConfigurationError(RadiusEdgeError):
    """Raised when a step, packet template or settings value is missing or invalid."""

    error_code = 8


class FinalizationError(RadiusEdgeError):
    """Raised when one or more writes during run finalization fail."""

    error_code = 9

    def __init__(self, execution_id=None, failures=None):
        self.execution_id = execution_id
        self.failures = failures or []
        details = "; ".join(f"{part}: {err}" for part, err in self.failures)
        super().__init__(message=f"Finalization of execution {execution_id} failed: {details}")


class AuthenticationError(ConnectionError):
    """Raised when SSH authentication with a target host fails."""

    error_code = 10
