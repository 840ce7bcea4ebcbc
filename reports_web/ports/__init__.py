from .stores import EntitySource, ReportRunStore, ReportStore

__all__ = [
    "EntitySource",
    "ReportStore",
    "ReportRunStore",
]
