from .base import Base
from .file_record import FileRecord

__all__ = [
    "Base",
    "FileRecord",
]
