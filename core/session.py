"""In-process home for processed results.

The expiring result cache is an optimization across runs; these helpers hold
the result the current session is working with, whatever the cache did.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Optional

from core.cache import file_identity
from core.models import AnalysisResult

DEFAULT_MAX_RESULTS = 8


class SessionResults:
    """Most recently used results keyed by file identity, bounded in size."""

    def __init__(self, max_results: int = DEFAULT_MAX_RESULTS) -> None:
        self.max_results = max(1, int(max_results))
        self._results: "OrderedDict[str, AnalysisResult]" = OrderedDict()

    def get(self, identity: str) -> Optional[AnalysisResult]:
        result = self._results.get(identity)
        if result is not None:
            self._results.move_to_end(identity)
        return result

    def put(self, identity: str, result: AnalysisResult) -> None:
        self._results[identity] = result
        self._results.move_to_end(identity)
        while len(self._results) > self.max_results:
            self._results.popitem(last=False)

    def __contains__(self, identity: object) -> bool:
        return identity in self._results

    def __len__(self) -> int:
        return len(self._results)


def upload_token(upload) -> str:
    """Key that changes with every new upload, even one with the same name and size.

    Uploads carrying a ``file_id`` use it; anything else falls back to the
    content-based :func:`file_identity`.
    """
    file_id = getattr(upload, "file_id", None)
    if file_id:
        return str(file_id)
    return file_identity(upload.name, upload.size, upload)
