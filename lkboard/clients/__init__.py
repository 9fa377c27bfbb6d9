from .batch import BatchDownloader
from .board import LeanKitBoard, first

__all__ = [
    "BatchDownloader",
    "LeanKitBoard",
    "first",
]
