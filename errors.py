class DecompositionError(ValueError):
    pass


class ShapeMismatchError(DecompositionError):
    """Data matrices or metrics disagree on the length of a shared axis."""


class SingularMetricError(DecompositionError):
    """A row or column metric is not invertible, so the generalized inner
    product it should define does not exist."""
