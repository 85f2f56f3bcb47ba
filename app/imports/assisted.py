"""Assisted column mapping through an external suggestion service.

The suggestion service is optional. When it is not configured, slow, or
answers with something unusable, the import preview falls back to the
heuristic mapping without telling the operator anything went wrong.

Example usage:
    oracle = get_mapping_oracle()
    suggestion = await suggest_mapping(oracle, headers, sample_rows, timeout=15)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Protocol

from app.imports.mapping import AVAILABLE_FIELDS, EQUIPMENT_FIELDS
from app.llm.service import LLMService, get_llm_service

logger = logging.getLogger(__name__)

SAMPLE_VALUES_PER_COLUMN = 3


@dataclass
class MappingSuggestion:
    """A mapping suggested by the external service.

    Attributes:
        mappings: Header -> equipment field for the columns it recognised.
        confidence: Confidence label ("high", "medium", "low").
        notes: Free-text explanation of uncertain mappings.
    """

    mappings: dict[str, str] = field(default_factory=dict)
    confidence: str = "medium"
    notes: str = ""


class ColumnMappingOracle(Protocol):
    """Protocol for services that suggest a column mapping."""

    async def suggest(
        self,
        headers: list[str],
        sample_rows: list[dict[str, str]],
        fields: list[str],
    ) -> MappingSuggestion | None:
        """Suggest a mapping for the given headers.

        Args:
            headers: Column headers in file order.
            sample_rows: A few rows keyed by header.
            fields: Equipment fields a column may map onto.

        Returns:
            The suggestion, or None when the service has nothing to offer.
        """
        ...


class NullMappingOracle:
    """Oracle used when no suggestion service is configured."""

    async def suggest(
        self,
        headers: list[str],
        sample_rows: list[dict[str, str]],
        fields: list[str],
    ) -> MappingSuggestion | None:
        return None


class LLMMappingOracle:
    """Asks a chat model to map columns, based on headers and sample values."""

    def __init__(self, llm: LLMService):
        self.llm = llm

    def build_prompt(
        self,
        headers: list[str],
        sample_rows: list[dict[str, str]],
        fields: list[str],
    ) -> str:
        descriptions = {f.name: f.description for f in EQUIPMENT_FIELDS}

        columns = []
        for header in headers:
            samples = [
                row[header] for row in sample_rows if row.get(header, "").strip()
            ][:SAMPLE_VALUES_PER_COLUMN]
            sample_text = ", ".join(samples) if samples else "(empty)"
            columns.append(f'Column: "{header}"\nSample values: {sample_text}')

        field_list = "\n".join(f"- {name}: {descriptions.get(name, name)}" for name in fields)

        return f"""You are helping map spreadsheet columns to equipment database fields for an import.

Analyze these spreadsheet columns and their sample values:

{chr(10).join(columns)}

Available equipment fields to map to:
{field_list}

For each spreadsheet column, determine the best matching equipment field based on:
1. The column header name
2. The actual data values in the samples
3. The meaning and purpose of each field

Respond in this exact JSON format (no markdown, just the JSON object):
{{
  "mappings": {{
    "Column Header 1": "field_name or null",
    "Column Header 2": "field_name or null"
  }},
  "confidence": "high/medium/low",
  "notes": "Brief explanation of any uncertain mappings"
}}

Use null for columns that don't match any equipment field. Each equipment field should only be mapped once (to its best match)."""

    async def suggest(
        self,
        headers: list[str],
        sample_rows: list[dict[str, str]],
        fields: list[str],
    ) -> MappingSuggestion | None:
        if not self.llm.configured:
            return None

        data = await self.llm.ask_json(self.build_prompt(headers, sample_rows, fields))

        raw_mappings = data.get("mappings")
        if not isinstance(raw_mappings, dict):
            return None

        return MappingSuggestion(
            mappings={str(k): v for k, v in raw_mappings.items() if isinstance(v, str)},
            confidence=str(data.get("confidence") or "medium"),
            notes=str(data.get("notes") or ""),
        )


def filter_suggestion(
    suggestion: MappingSuggestion | None,
    headers: list[str],
    fields: list[str],
) -> MappingSuggestion | None:
    """Drop entries naming unknown headers or fields.

    Returns:
        The filtered suggestion, or None when nothing usable is left.
    """
    if suggestion is None:
        return None
    known_headers = set(headers)
    mappings = {
        header: target
        for header, target in suggestion.mappings.items()
        if header in known_headers and target in fields
    }
    if not mappings:
        return None
    return MappingSuggestion(
        mappings=mappings, confidence=suggestion.confidence, notes=suggestion.notes
    )


async def suggest_mapping(
    oracle: ColumnMappingOracle,
    headers: list[str],
    sample_rows: list[dict[str, str]],
    fields: list[str] | None = None,
    timeout: float = 15.0,
) -> MappingSuggestion | None:
    """Ask the oracle for a mapping, never letting its failure escape.

    Args:
        oracle: Suggestion service.
        headers: Column headers in file order.
        sample_rows: A few rows keyed by header.
        fields: Equipment fields a column may map onto.
        timeout: Seconds to wait before giving up.

    Returns:
        A usable suggestion, or None to fall back to the heuristic mapping.
    """
    fields = fields or AVAILABLE_FIELDS
    try:
        suggestion = await asyncio.wait_for(
            oracle.suggest(headers, sample_rows, fields), timeout=timeout
        )
    except TimeoutError:
        logger.warning(f"Assisted column mapping timed out after {timeout}s, using heuristics")
        return None
    except Exception as e:
        logger.warning(f"Assisted column mapping failed, using heuristics: {e}")
        return None

    return filter_suggestion(suggestion, headers, fields)


def get_mapping_oracle() -> ColumnMappingOracle:
    """Get the configured mapping oracle.

    Returns:
        An LLM-backed oracle when an API key is set, otherwise a null oracle.
    """
    llm = get_llm_service()
    if llm.configured:
        return LLMMappingOracle(llm)
    return NullMappingOracle()
