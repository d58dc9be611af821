"""Tests for RemoteEmbedder: retries, error classification, response parsing."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from mnemos.embed.remote import RemoteEmbedder, classify_error, validate_api_key
from mnemos.errors import PermanentEmbeddingError, TransientEmbeddingError

_PATCH = "mnemos.embed.remote.litellm.embedding"


class _HTTPError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code


def _response(*vectors: list[float]) -> MagicMock:
    return MagicMock(data=[{"embedding": v} for v in vectors])


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")


def _embedder(sleeps: list[float], **kwargs) -> RemoteEmbedder:
    return RemoteEmbedder("openai/text-embedding-3-small", sleep=sleeps.append, **kwargs)


# ------------------------------------------------------------------
# Happy path
# ------------------------------------------------------------------

def test_embed_returns_vector():
    sleeps: list[float] = []
    with patch(_PATCH, return_value=_response([0.1, 0.2, 0.3])) as mock_embed:
        vec = _embedder(sleeps).embed("hello")
    assert vec == [0.1, 0.2, 0.3]
    assert sleeps == []
    kwargs = mock_embed.call_args.kwargs
    assert kwargs["model"] == "openai/text-embedding-3-small"
    assert kwargs["input"] == ["hello"]
    assert kwargs["timeout"] == 30.0


def test_embed_batch_single_request():
    with patch(_PATCH, return_value=_response([1.0], [2.0])) as mock_embed:
        results = _embedder([]).embed_batch(["a", "b"])
    assert mock_embed.call_count == 1
    assert [r.vector for r in results] == [[1.0], [2.0]]


def test_embed_batch_empty_makes_no_request():
    with patch(_PATCH) as mock_embed:
        assert _embedder([]).embed_batch([]) == []
    mock_embed.assert_not_called()


# ------------------------------------------------------------------
# Retries
# ------------------------------------------------------------------

def test_transient_failure_then_success():
    sleeps: list[float] = []
    side_effect = [_HTTPError(503), TimeoutError("slow"), _response([0.5])]
    with patch(_PATCH, side_effect=side_effect) as mock_embed:
        vec = _embedder(sleeps, max_retries=2).embed("x")
    assert vec == [0.5]
    assert mock_embed.call_count == 3
    assert sleeps == [0.5, 1.0]


def test_transient_retries_exhausted():
    sleeps: list[float] = []
    with patch(_PATCH, side_effect=_HTTPError(429)) as mock_embed:
        with pytest.raises(TransientEmbeddingError) as exc_info:
            _embedder(sleeps, max_retries=2).embed("x")
    assert mock_embed.call_count == 3
    assert exc_info.value.status_code == 429
    assert exc_info.value.retryable


def test_backoff_capped_at_max():
    sleeps: list[float] = []
    with patch(_PATCH, side_effect=_HTTPError(500)):
        with pytest.raises(TransientEmbeddingError):
            _embedder(sleeps, max_retries=4, backoff_base=1.0, backoff_max=3.0).embed("x")
    assert sleeps == [1.0, 2.0, 3.0, 3.0]


def test_permanent_failure_not_retried():
    sleeps: list[float] = []
    with patch(_PATCH, side_effect=_HTTPError(401)) as mock_embed:
        with pytest.raises(PermanentEmbeddingError):
            _embedder(sleeps).embed("x")
    assert mock_embed.call_count == 1
    assert sleeps == []


def test_embed_batch_failure_marks_every_position():
    with patch(_PATCH, side_effect=_HTTPError(400)):
        results = _embedder([]).embed_batch(["a", "b", "c"])
    assert len(results) == 3
    assert all(not r.ok for r in results)
    assert all(isinstance(r.error, PermanentEmbeddingError) for r in results)


def test_embed_query_makes_a_single_attempt():
    sleeps: list[float] = []
    with patch(_PATCH, side_effect=_HTTPError(503)) as mock_embed:
        with pytest.raises(TransientEmbeddingError):
            _embedder(sleeps, max_retries=4).embed_query("x")
    assert mock_embed.call_count == 1
    assert sleeps == []


def test_embed_batch_leaves_transient_retries_to_caller():
    sleeps: list[float] = []
    with patch(_PATCH, side_effect=TimeoutError("slow")) as mock_embed:
        results = _embedder(sleeps, max_retries=4).embed_batch(["a", "b"])
    assert mock_embed.call_count == 1
    assert sleeps == []
    assert all(r.error.retryable for r in results)


# ------------------------------------------------------------------
# Response parsing
# ------------------------------------------------------------------

def test_malformed_response_is_permanent():
    with patch(_PATCH, return_value=MagicMock(data=[{"nope": 1}])):
        with pytest.raises(PermanentEmbeddingError, match="Malformed"):
            _embedder([]).embed("x")


def test_count_mismatch_is_permanent():
    with patch(_PATCH, return_value=_response([1.0])):
        with pytest.raises(PermanentEmbeddingError, match="2 inputs"):
            _embedder([])._request(["a", "b"])


def test_empty_vector_is_permanent():
    with patch(_PATCH, return_value=_response([])):
        with pytest.raises(PermanentEmbeddingError):
            _embedder([]).embed("x")


# ------------------------------------------------------------------
# API key validation
# ------------------------------------------------------------------

def test_missing_api_key_fails_before_request(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with patch(_PATCH) as mock_embed:
        with pytest.raises(PermanentEmbeddingError, match="OPENAI_API_KEY"):
            _embedder([]).embed("x")
    mock_embed.assert_not_called()


def test_ollama_needs_no_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    validate_api_key("ollama/nomic-embed-text")


def test_bare_model_name_defaults_to_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(PermanentEmbeddingError):
        validate_api_key("text-embedding-3-small")


# ------------------------------------------------------------------
# classify_error
# ------------------------------------------------------------------

@pytest.mark.parametrize("status", [408, 429, 500, 502, 503])
def test_retryable_status_codes(status):
    assert isinstance(classify_error(_HTTPError(status)), TransientEmbeddingError)


@pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
def test_permanent_status_codes(status):
    assert isinstance(classify_error(_HTTPError(status)), PermanentEmbeddingError)


def test_connection_error_is_transient():
    assert isinstance(classify_error(ConnectionError("reset")), TransientEmbeddingError)


def test_embedding_error_passes_through():
    err = PermanentEmbeddingError("bad")
    assert classify_error(err) is err
