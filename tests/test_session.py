from __future__ import annotations

import io
from types import SimpleNamespace

from core.models import AnalysisResult, Statistics
from core.session import SessionResults, upload_token
from tests.conftest import make_record


def _result(tag: str) -> AnalysisResult:
    return AnalysisResult(
        records=[make_record(tag)],
        hour_buckets=[],
        zip_aggregates=[],
        global_stats=Statistics(total=1),
        service_types=[tag],
        file_identity=tag,
    )


class NamedBytes(io.BytesIO):
    def __init__(self, name: str, content: bytes) -> None:
        super().__init__(content)
        self.name = name
        self.size = len(content)


class TestSessionResults:
    def test_put_and_get(self) -> None:
        sessions = SessionResults()
        sessions.put("a", _result("a"))
        assert sessions.get("a") == _result("a")
        assert sessions.get("b") is None

    def test_least_recently_used_is_dropped(self) -> None:
        sessions = SessionResults(max_results=2)
        sessions.put("a", _result("a"))
        sessions.put("b", _result("b"))
        sessions.get("a")
        sessions.put("c", _result("c"))
        assert "a" in sessions
        assert "b" not in sessions
        assert len(sessions) == 2


class TestUploadToken:
    def test_same_name_and_size_different_upload(self) -> None:
        first = SimpleNamespace(file_id="upload-1", name="a.csv", size=100)
        second = SimpleNamespace(file_id="upload-2", name="a.csv", size=100)
        assert upload_token(first) != upload_token(second)

    def test_same_upload_is_stable(self) -> None:
        upload = SimpleNamespace(file_id="upload-1", name="a.csv", size=100)
        assert upload_token(upload) == upload_token(upload)

    def test_falls_back_to_content(self) -> None:
        before = NamedBytes("a.csv", b"A,2024-01-01")
        after = NamedBytes("a.csv", b"B,2024-01-01")
        assert upload_token(before) != upload_token(after)
        assert before.read() == b"A,2024-01-01"
