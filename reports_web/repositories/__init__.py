from .run_repository import RunFileRepository

__all__ = ["RunFileRepository"]
