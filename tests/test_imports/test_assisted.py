"""Tests for assisted column mapping."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.imports.assisted import (
    LLMMappingOracle,
    MappingSuggestion,
    NullMappingOracle,
    filter_suggestion,
    get_mapping_oracle,
    suggest_mapping,
)
from app.imports.mapping import AVAILABLE_FIELDS

HEADERS = ["Asset", "Serial", "Colour"]
SAMPLE_ROWS = [
    {"Asset": "Centrifuge", "Serial": "C-100", "Colour": "White"},
    {"Asset": "Microscope", "Serial": "M-200", "Colour": ""},
]


class StaticOracle:
    """Oracle returning a fixed suggestion."""

    def __init__(self, suggestion):
        self.suggestion = suggestion

    async def suggest(self, headers, sample_rows, fields):
        return self.suggestion


class SlowOracle:
    """Oracle that never answers in time."""

    async def suggest(self, headers, sample_rows, fields):
        await asyncio.sleep(10)
        return MappingSuggestion(mappings={"Asset": "name"})


class FailingOracle:
    """Oracle whose backend is broken."""

    async def suggest(self, headers, sample_rows, fields):
        raise ValueError('{"error_type": "api_error", "message": "HTTP 500"}')


def _mock_llm(configured: bool = True, reply: dict | None = None) -> MagicMock:
    llm = MagicMock()
    llm.configured = configured
    llm.ask_json = AsyncMock(return_value=reply or {})
    return llm


class TestSuggestMapping:
    """Tests for suggest_mapping()."""

    @pytest.mark.asyncio
    async def test_returns_suggestion(self):
        """Test a usable suggestion is passed through."""
        oracle = StaticOracle(
            MappingSuggestion(mappings={"Asset": "name"}, confidence="high", notes="ok")
        )
        result = await suggest_mapping(oracle, HEADERS, SAMPLE_ROWS)

        assert result.mappings == {"Asset": "name"}
        assert result.confidence == "high"

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self):
        """Test a slow oracle is abandoned without raising."""
        result = await suggest_mapping(SlowOracle(), HEADERS, SAMPLE_ROWS, timeout=0.01)
        assert result is None

    @pytest.mark.asyncio
    async def test_failure_returns_none(self):
        """Test oracle errors never escape."""
        result = await suggest_mapping(FailingOracle(), HEADERS, SAMPLE_ROWS)
        assert result is None

    @pytest.mark.asyncio
    async def test_null_oracle(self):
        """Test the null oracle means no suggestion."""
        assert await suggest_mapping(NullMappingOracle(), HEADERS, SAMPLE_ROWS) is None

    @pytest.mark.asyncio
    async def test_unusable_suggestion_returns_none(self):
        """Test a suggestion naming only unknown headers or fields is dropped."""
        oracle = StaticOracle(
            MappingSuggestion(mappings={"Nope": "name", "Asset": "price"})
        )
        assert await suggest_mapping(oracle, HEADERS, SAMPLE_ROWS) is None


class TestFilterSuggestion:
    """Tests for filter_suggestion()."""

    def test_drops_unknown_entries(self):
        """Test only known header/field pairs survive."""
        suggestion = MappingSuggestion(
            mappings={"Asset": "name", "Serial": "serial_number", "Colour": "paint", "X": "model"},
            confidence="low",
        )
        result = filter_suggestion(suggestion, HEADERS, AVAILABLE_FIELDS)

        assert result.mappings == {"Asset": "name", "Serial": "serial_number"}
        assert result.confidence == "low"

    def test_none(self):
        """Test no suggestion stays no suggestion."""
        assert filter_suggestion(None, HEADERS, AVAILABLE_FIELDS) is None


class TestLLMMappingOracle:
    """Tests for the chat-model backed oracle."""

    @pytest.mark.asyncio
    async def test_not_configured(self):
        """Test an unconfigured model is never called."""
        llm = _mock_llm(configured=False)
        result = await LLMMappingOracle(llm).suggest(HEADERS, SAMPLE_ROWS, AVAILABLE_FIELDS)

        assert result is None
        llm.ask_json.assert_not_called()

    @pytest.mark.asyncio
    async def test_parses_reply(self):
        """Test null and non-string entries are dropped from the reply."""
        llm = _mock_llm(
            reply={
                "mappings": {"Asset": "name", "Serial": "serial_number", "Colour": None},
                "confidence": "high",
                "notes": "Colour has no matching field",
            }
        )
        result = await LLMMappingOracle(llm).suggest(HEADERS, SAMPLE_ROWS, AVAILABLE_FIELDS)

        assert result.mappings == {"Asset": "name", "Serial": "serial_number"}
        assert result.confidence == "high"
        assert result.notes == "Colour has no matching field"

    @pytest.mark.asyncio
    async def test_reply_without_mappings(self):
        """Test a reply missing the mappings object gives no suggestion."""
        llm = _mock_llm(reply={"confidence": "low"})
        assert await LLMMappingOracle(llm).suggest(HEADERS, SAMPLE_ROWS, AVAILABLE_FIELDS) is None

    def test_prompt_contents(self):
        """Test the prompt lists headers, sample values and fields."""
        prompt = LLMMappingOracle(_mock_llm()).build_prompt(
            HEADERS, SAMPLE_ROWS, AVAILABLE_FIELDS
        )

        assert 'Column: "Asset"' in prompt
        assert "Centrifuge, Microscope" in prompt
        # Blank samples are left out, all-blank columns say so
        assert "Sample values: White\n" in prompt
        assert "- serial_number:" in prompt
        assert '"mappings"' in prompt


class TestGetMappingOracle:
    """Tests for get_mapping_oracle()."""

    def test_unconfigured_gives_null_oracle(self):
        """Test no API key means the null oracle."""
        with patch("app.imports.assisted.get_llm_service", return_value=_mock_llm(False)):
            assert isinstance(get_mapping_oracle(), NullMappingOracle)

    def test_configured_gives_llm_oracle(self):
        """Test an API key enables the chat-model oracle."""
        with patch("app.imports.assisted.get_llm_service", return_value=_mock_llm(True)):
            assert isinstance(get_mapping_oracle(), LLMMappingOracle)
