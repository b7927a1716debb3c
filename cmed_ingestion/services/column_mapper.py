"""Map ingested file columns onto CMED price table fields."""
import math
import re
from dataclasses import dataclass
from difflib import get_close_matches
from typing import Any, Dict, List, Mapping, Optional, Sequence

import structlog

from cmed_ingestion.parsers.formats import excel_serial_to_iso, parse_float_prefix

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CmedField:
    """Target field of the CMED price table."""
    key: str
    label: str
    required: bool


CMED_FIELDS: List[CmedField] = [
    CmedField("substancia", "Substância", True),
    CmedField("laboratorio", "Laboratório", True),
    CmedField("produto", "Produto", True),
    CmedField("apresentacao", "Apresentação", False),
    CmedField("codigo_ggrem", "Código GGREM", False),
    CmedField("registro", "Registro", False),
    CmedField("ean_1", "EAN 1", False),
    CmedField("classe_terapeutica", "Classe Terapêutica", False),
    CmedField("tipo_de_produto", "Tipo de Produto", True),
    CmedField("regime_de_preco", "Regime de Preço", True),
    CmedField("pf_sem_impostos", "PF sem Impostos", False),
    CmedField("data_publicacao", "Data de Publicação", True),
]

# Known header spellings for each field, matched as substrings
FIELD_ALIASES: Dict[str, List[str]] = {
    "substancia": ["substancia", "substância", "principio ativo", "princípio ativo", "subst"],
    "laboratorio": ["laboratorio", "laboratório", "lab", "detentora", "fabricante"],
    "produto": ["produto", "nome do produto", "medicamento", "nome comercial", "apres"],
    "apresentacao": ["apresentacao", "apresentação", "formula", "fórmula"],
    "codigo_ggrem": ["codigo", "código", "codigo_ggrem", "código ggrem", "ggrem"],
    "registro": ["registro", "numero registro", "número registro", "reg ms"],
    "ean_1": ["ean", "ean_1", "ean1", "codigo barras", "código barras"],
    "classe_terapeutica": ["classe", "classe_terapeutica", "classe terapêutica", "terapeutica"],
    "tipo_de_produto": ["tipo", "tipo_produto", "tipo de produto", "tipo_de_produto"],
    "regime_de_preco": ["regime", "regime_preco", "regime de preco", "regime_de_preco"],
    "pf_sem_impostos": ["pf", "pf_sem_impostos", "preco fabrica", "preço fábrica"],
    "data_publicacao": ["data", "data_publicacao", "publicação", "data public"],
}

PRICE_FIELD = "pf_sem_impostos"
DATE_FIELD = "data_publicacao"

_CURRENCY_RE = re.compile(r"R\$|\s")


def _find_best_match(field: CmedField, source_columns: Sequence[str]) -> Optional[str]:
    key = field.key.lower()
    label = field.label.lower()
    aliases = [alias.lower() for alias in FIELD_ALIASES.get(field.key, [])]

    # Exact key/label match, or a known alias inside the header
    for column in source_columns:
        column_lower = column.lower().strip()
        if column_lower in (key, label):
            return column
        if any(alias in column_lower for alias in aliases):
            return column

    # Substring either way
    for column in source_columns:
        column_lower = column.lower().strip()
        if not column_lower:
            continue
        if key in column_lower or column_lower in key or label in column_lower or column_lower in label:
            return column

    normalized = [column.lower().strip() for column in source_columns]
    matches = get_close_matches(key, normalized, n=1, cutoff=0.8)
    if matches:
        return source_columns[normalized.index(matches[0])]
    return None


def suggest_column_mapping(source_columns: Sequence[str]) -> Dict[str, str]:
    """Guess which file column feeds each CMED field.

    Args:
        source_columns: Headers detected in the ingested file

    Returns:
        Field key -> source column, only for fields a column was found for
    """
    mapping: Dict[str, str] = {}
    for field in CMED_FIELDS:
        match = _find_best_match(field, source_columns)
        if match is not None:
            mapping[field.key] = match

    logger.debug("column_mapping_suggested", mapping=mapping, columns=list(source_columns))
    return mapping


def missing_required_fields(mapping: Mapping[str, Optional[str]]) -> List[str]:
    """Required CMED fields with no source column assigned."""
    return [field.key for field in CMED_FIELDS if field.required and not mapping.get(field.key)]


def _convert_price(value: Any) -> Optional[float]:
    if isinstance(value, str):
        value = _CURRENCY_RE.sub("", value).replace(",", ".", 1)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        number = parse_float_prefix(str(value))
    return None if math.isnan(number) else number


def _convert_publication_date(value: Any) -> Any:
    if not value:
        return None
    if isinstance(value, str) and "/" in value:
        parts = value.split("/")
        if len(parts) == 3:
            return f"{parts[2]}-{parts[1]}-{parts[0]}"
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return excel_serial_to_iso(value)
    return value


def apply_column_mapping(
    rows: Sequence[Mapping[str, Any]],
    mapping: Mapping[str, Optional[str]],
) -> List[Dict[str, Any]]:
    """Build CMED records from ingested rows.

    The price field loses ``R$`` and whitespace and becomes a float, the
    publication date becomes ``YYYY-MM-DD`` (``DD/MM/YYYY`` strings and Excel
    serials are converted), every other field is stringified. Fields with no
    mapped column, or whose column is absent from the row, are None.
    """
    records: List[Dict[str, Any]] = []
    for row in rows:
        record: Dict[str, Any] = {}
        for target_field, source_column in mapping.items():
            if not source_column or source_column not in row:
                record[target_field] = None
                continue
            value = row[source_column]
            if target_field == PRICE_FIELD:
                record[target_field] = _convert_price(value)
            elif target_field == DATE_FIELD:
                record[target_field] = _convert_publication_date(value)
            else:
                record[target_field] = None if value is None else str(value)
        records.append(record)
    return records
