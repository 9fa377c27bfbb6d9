from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


@dataclass
class BatchItem:
    """One attachment download job: what to fetch and where to put it."""

    id: Union[int, str]
    path: Union[str, Path]


@dataclass
class AttachmentDownloadResult:
    """Outcome of a single streamed attachment download."""

    attachment_id: Union[int, str]
    file_path: Path
    status_code: int = 200
    content_type: Optional[str] = None
    size_bytes: int = 0
    duration_ms: int = 0
