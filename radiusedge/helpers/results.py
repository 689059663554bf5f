"""Uniform return value of the binds."""


class Result:
    """Attribute bag holding whatever a bind reports.

    SSH commands populate status, stdout and stderr. Other collaborators use
    whichever fields they need (rows, sent, received, status_code, ...).
    """

    def __init__(self, **kwargs):
        self.__dict__.update(kwargs)

    def __repr__(self):
        if "stdout" in self.__dict__:
            return f"stdout:\n{self.stdout}\nstderr:\n{self.stderr}\nstatus: {self.status}"
        fields = ", ".join(f"{key}={value!r}" for key, value in self.__dict__.items())
        return f"Result({fields})"

    def get(self, key, default=None):
        """Return a field value, or default when the collaborator did not set it."""
        return self.__dict__.get(key, default)

    @classmethod
    def from_ssh(cls, stdout, stderr, status):
        """Create a Result object from the decoded output of an SSH command."""
        return cls(status=status, stdout=stdout, stderr=stderr)
