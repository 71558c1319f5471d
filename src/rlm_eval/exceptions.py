"""Exception types for the eval harness."""


class FatalEvalError(Exception):
    """Setup error that should stop the entire eval run before any task executes.

    Used for unknown benchmarks, misconfigured or unloadable drivers, and
    task sources whose data files are missing. Per-task failures never
    raise this; they are recorded on the task's result instead.
    """

    pass


class CorruptReportError(Exception):
    """Report file exists but cannot be used as a resumption source.

    Raised by the strict report parser. ``load_results`` catches it and
    treats the run as having no prior progress.
    """

    pass
