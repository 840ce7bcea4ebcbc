class ReportingError(Exception):
    """Base class for reporting failures raised inside the execution step."""


class UnknownSourceError(ReportingError):
    def __init__(self, source: str):
        super().__init__(f"Unknown report source: {source}")
        self.source = source


class ReportCancelledError(ReportingError):
    pass
