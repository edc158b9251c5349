"""Application use cases."""
from .upload_file import UploadFileUseCase

__all__ = ["UploadFileUseCase"]
