"""
Errors and warnings raised by the analysis pipeline.

Data problems abort the pipeline. Model-fit problems carry whatever
diagnostics the solver produced. Estimability gaps are not errors at all
(see ``contrasts.NOT_ESTIMABLE``).
"""


class DataError(ValueError):
    """Input data cannot be used as-is."""
    pass


class MissingColumnError(DataError):
    """Required columns are absent from the input."""

    def __init__(self, columns):
        self.columns = list(columns)
        super().__init__(
            f"Missing required column(s): {', '.join(map(str, self.columns))}"
        )


class UnparseableValueError(DataError):
    """A column holds values that cannot be parsed."""

    def __init__(self, column, values, reason="not numeric"):
        self.column = column
        self.values = list(values)
        shown = ', '.join(repr(v) for v in self.values[:5])
        if len(self.values) > 5:
            shown += f", ... ({len(self.values)} total)"
        super().__init__(f"Column '{column}' has values {reason}: {shown}")


class MissingBaselineError(DataError):
    """Post-baseline records exist for subjects with no baseline record."""

    def __init__(self, subjects):
        self.subjects = list(subjects)
        super().__init__(
            f"No baseline record for subject(s): {_format_ids(self.subjects)}"
        )


class DuplicateBaselineError(DataError):
    """Subjects with more than one baseline record."""

    def __init__(self, subjects):
        self.subjects = list(subjects)
        super().__init__(
            f"More than one baseline record for subject(s): "
            f"{_format_ids(self.subjects)}"
        )


class DuplicateObservationError(DataError):
    """More than one record for a (subject, visit) pair."""

    def __init__(self, keys):
        self.keys = list(keys)
        shown = ', '.join(f"{s}/{v}" for s, v in self.keys[:10])
        super().__init__(f"Duplicate (subject, visit) records: {shown}")


class ModelFitError(RuntimeError):
    """
    Model fitting failed (non-convergence, singular covariance, ...).

    Attributes
    ----------
    diagnostics : dict
        Whatever the solver reported before giving up.
    """

    def __init__(self, message, diagnostics=None):
        self.diagnostics = dict(diagnostics or {})
        super().__init__(message)


class FitWarning(UserWarning):
    """Solver warning or degraded model structure."""
    pass


class MissingBaselineWarning(UserWarning):
    pass


class NonFiniteChangeWarning(UserWarning):
    pass


def _format_ids(ids, limit=10):
    shown = ', '.join(map(str, ids[:limit]))
    if len(ids) > limit:
        shown += f", ... ({len(ids)} total)"
    return shown
