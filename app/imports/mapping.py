"""Column mapping for equipment import.

Header normalization, the synonym table used to guess which equipment
field a column holds, column-name sanitization for columns created on
demand, and the merge of heuristic and assisted proposals into the
mapping shown to the operator.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass

from app.imports.schemas import FieldOption, MappingTarget, MappingTargetKind

# Fields available for mapping, in display order
EQUIPMENT_FIELDS: list[FieldOption] = [
    FieldOption(
        name="name",
        label="Name",
        description="Equipment name/title, the primary identifier for the equipment",
        required=True,
    ),
    FieldOption(
        name="model",
        label="Model",
        description="Model number or product model name",
    ),
    FieldOption(
        name="serial_number",
        label="Serial number",
        description="Serial number or unique identifier for individual units",
    ),
    FieldOption(
        name="manufacturer",
        label="Manufacturer",
        description="Manufacturer, brand, or vendor name",
    ),
    FieldOption(
        name="location",
        label="Location",
        description="Physical location, room, building, or site where equipment is located",
    ),
    FieldOption(
        name="description",
        label="Description",
        description="General description, notes, or additional details about the equipment",
    ),
]

AVAILABLE_FIELDS: list[str] = [f.name for f in EQUIPMENT_FIELDS]

# Identity, audit and system columns; never a mapping destination
RESERVED_COLUMNS: frozenset[str] = frozenset(
    {
        "id",
        "qr_code",
        "image_url",
        "is_active",
        "created_by",
        "created_at",
        "updated_at",
        "custom_fields",
    }
)

# Field used as the display name, and the one used when it is blank
PRIMARY_FIELD = "name"
SECONDARY_FIELD = "model"

# Field compared for duplicate detection
DUPLICATE_KEY_FIELD = "serial_number"


@dataclass(frozen=True)
class FieldSynonyms:
    """Header patterns recognised for one equipment field.

    Attributes:
        field: Equipment field name.
        contains: Substrings; a normalized header containing any of them matches.
        equals: Whole normalized headers that match.
    """

    field: str
    contains: tuple[str, ...] = ()
    equals: tuple[str, ...] = ()

    def matches(self, normalized: str) -> bool:
        return normalized in self.equals or any(token in normalized for token in self.contains)


# Order matters: the first matching entry wins
FIELD_SYNONYMS: tuple[FieldSynonyms, ...] = (
    FieldSynonyms("name", contains=("name",), equals=("equipment", "item")),
    FieldSynonyms("model", contains=("model",), equals=("modelnumber",)),
    FieldSynonyms("serial_number", contains=("serial",), equals=("sn", "serialno")),
    FieldSynonyms(
        "manufacturer", contains=("manufacturer", "make"), equals=("brand", "vendor")
    ),
    FieldSynonyms("location", contains=("location",), equals=("loc", "site", "room")),
    FieldSynonyms(
        "description", contains=("description", "desc"), equals=("notes", "details")
    ),
)

_SEPARATORS_RE = re.compile(r"[^a-z0-9]")
_IDENTIFIER_RUN_RE = re.compile(r"[^a-z0-9]+")


def normalize_header(header: str) -> str:
    """Lower-case a header and strip every separator.

    "Serial No." -> "serialno", "S/N" -> "sn".
    """
    return _SEPARATORS_RE.sub("", header.lower())


def normalize_column_name(header: str) -> str | None:
    """Map a header to an equipment field name.

    Args:
        header: Column header from the file.

    Returns:
        str | None: Equipment field name or None if not recognised.
    """
    normalized = normalize_header(header)
    if not normalized:
        return None
    for synonyms in FIELD_SYNONYMS:
        if synonyms.matches(normalized):
            return synonyms.field
    return None


def build_column_mapping(headers: list[str]) -> tuple[dict[str, str], list[str]]:
    """Guess an equipment field for every header.

    Args:
        headers: Column headers from the file.

    Returns:
        tuple: (header -> field mapping, unmapped headers), both in file order.
    """
    mapping: dict[str, str] = {}
    unmapped: list[str] = []

    for header in headers:
        field = normalize_column_name(header)
        if field:
            mapping[header] = field
        else:
            unmapped.append(header)

    return mapping, unmapped


def sanitize_column_name(name: str, max_length: int = 64) -> str:
    """Turn an arbitrary header into a column identifier.

    Lower-cases, collapses every run of characters outside [a-z0-9] into a
    single underscore, trims underscores from both ends and truncates to
    ``max_length``. Applying it twice gives the same result as once.

    Examples:
        "Widget Color" -> "widget_color"
        "  Cost ($) / Unit " -> "cost_unit"

    Args:
        name: Header or requested column name.
        max_length: Longest identifier the database accepts.

    Returns:
        str: Sanitized identifier, possibly empty.
    """
    sanitized = _IDENTIFIER_RUN_RE.sub("_", name.lower()).strip("_")
    return sanitized[:max_length].rstrip("_")


def is_valid_column_name(name: str) -> bool:
    """Whether a sanitized name can be created as a column."""
    return bool(name) and not name.isdigit()


@dataclass
class MappingProposal:
    """Default mapping offered to the operator.

    Attributes:
        targets: Proposed target per header, in file order.
        from_assisted: Whether the assisted mapper's suggestion was used.
    """

    targets: dict[str, MappingTarget]
    from_assisted: bool = False


def default_target(
    header: str,
    field: str | None,
    max_length: int = 64,
    reserved: frozenset[str] = RESERVED_COLUMNS,
) -> MappingTarget:
    """Proposed target for one header.

    A recognised field maps onto it; otherwise a new column is proposed,
    unless the header cannot become a column (reserved or empty after
    sanitization), in which case it is proposed as skipped.
    """
    if field:
        return MappingTarget.existing(field)
    column_name = sanitize_column_name(header, max_length)
    if column_name in reserved or not is_valid_column_name(column_name):
        return MappingTarget.skip()
    return MappingTarget.new_column(column_name)


def resolve_proposal(
    headers: list[str],
    heuristic: Mapping[str, str],
    assisted: Mapping[str, str] | None = None,
    max_length: int = 64,
    reserved: frozenset[str] = RESERVED_COLUMNS,
) -> MappingProposal:
    """Build the default mapping shown to the operator.

    An assisted suggestion, when present, replaces the heuristic guess
    wholesale: headers it leaves out are proposed as new columns even if
    the heuristics recognised them.

    Args:
        headers: Column headers in file order.
        heuristic: Header -> field guesses from the synonym table.
        assisted: Header -> field suggestion from the assisted mapper.
        max_length: Identifier length limit for proposed new columns.
        reserved: Names that can never be created.

    Returns:
        MappingProposal: Target per header.
    """
    source = assisted if assisted else heuristic
    targets = {
        header: default_target(header, source.get(header), max_length, reserved)
        for header in headers
    }
    return MappingProposal(targets=targets, from_assisted=bool(assisted))


def find_unknown_fields(mapping: Mapping[str, MappingTarget]) -> list[str]:
    """Existing-field targets that are not equipment fields.

    Returns:
        list[str]: Offending field names in mapping order, without repeats.
    """
    unknown: list[str] = []
    for target in mapping.values():
        if target.kind != MappingTargetKind.EXISTING_FIELD:
            continue
        if target.field not in AVAILABLE_FIELDS and target.field not in unknown:
            unknown.append(target.field)
    return unknown
