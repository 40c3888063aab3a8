"""
Error taxonomy for the exposure engine.

Every error is fatal: draws and compositions are deterministic given valid
inputs, so nothing here is ever retried.
"""


class ExposureModelError(ValueError):
    """Base class for all model definition and evaluation errors."""


class DistributionParamError(ExposureModelError):
    """Sampler parameters lie outside the distribution's valid domain."""

    def __init__(self, family: str, message: str):
        self.family = family
        super().__init__(f"{family}: {message}")


class ShapeMismatchError(ExposureModelError):
    """Two nodes cannot be combined because their lengths disagree."""

    def __init__(self, message: str, left=None, right=None, op: str = ""):
        self.left = left
        self.right = right
        self.op = op
        super().__init__(message)


class UndefinedNodeReferenceError(ExposureModelError):
    """A node references a name that is not (yet) defined or realized."""

    def __init__(self, name: str, context: str = ""):
        self.name = name
        msg = f"Undefined node reference '{name}'"
        if context:
            msg += f" in {context}"
        super().__init__(msg)


class UnknownReducerError(ExposureModelError, KeyError):
    """A summary label was requested that the reducer schema does not hold."""

    def __init__(self, label: str, labels=()):
        self.label = label
        super().__init__(f"Reducer '{label}' not in summary schema {list(labels)}")

    def __str__(self):
        return self.args[0]
