"""Unit tests for CMED column mapping."""
import pytest

from cmed_ingestion.services.column_mapper import (
    CMED_FIELDS,
    apply_column_mapping,
    missing_required_fields,
    suggest_column_mapping,
)

CMED_HEADERS = [
    "SUBSTÂNCIA",
    "LABORATÓRIO",
    "EAN 1",
    "PF Sem Impostos",
    "REGIME DE PREÇO",
    "CLASSE TERAPÊUTICA",
]


class TestSuggestColumnMapping:
    """Test header matching against CMED fields."""

    def test_labels_and_aliases_matched(self):
        mapping = suggest_column_mapping(CMED_HEADERS)
        assert mapping["substancia"] == "SUBSTÂNCIA"
        assert mapping["laboratorio"] == "LABORATÓRIO"
        assert mapping["ean_1"] == "EAN 1"
        assert mapping["pf_sem_impostos"] == "PF Sem Impostos"
        assert mapping["regime_de_preco"] == "REGIME DE PREÇO"
        assert mapping["classe_terapeutica"] == "CLASSE TERAPÊUTICA"

    def test_fields_without_match_left_out(self):
        mapping = suggest_column_mapping(CMED_HEADERS)
        assert "produto" not in mapping
        assert "data_publicacao" not in mapping

    def test_exact_key_match(self):
        assert suggest_column_mapping(["codigo_ggrem"])["codigo_ggrem"] == "codigo_ggrem"

    def test_close_spelling_matched(self):
        """Verify a near-miss header is picked up by the fuzzy pass."""
        assert suggest_column_mapping(["registru"]).get("registro") == "registru"

    def test_no_columns(self):
        assert suggest_column_mapping([]) == {}

    def test_missing_required_fields(self):
        mapping = suggest_column_mapping(CMED_HEADERS)
        assert missing_required_fields(mapping) == ["produto", "tipo_de_produto", "data_publicacao"]

    def test_blank_mapping_counts_as_missing(self):
        required = [field.key for field in CMED_FIELDS if field.required]
        assert missing_required_fields({key: "" for key in required}) == required


class TestApplyColumnMapping:
    """Test record conversion for mapped fields."""

    @pytest.fixture
    def mapping(self):
        return {
            "produto": "Nome",
            "pf_sem_impostos": "Preço",
            "data_publicacao": "Data",
            "registro": None,
            "laboratorio": "Inexistente",
        }

    def test_fields_converted(self, mapping):
        rows = [{"Nome": 123, "Preço": "R$ 12,50", "Data": "10/03/2025"}]
        assert apply_column_mapping(rows, mapping) == [{
            "produto": "123",
            "pf_sem_impostos": 12.5,
            "data_publicacao": "2025-03-10",
            "registro": None,
            "laboratorio": None,
        }]

    @pytest.mark.parametrize("raw,expected", [
        (7, 7.0),
        (12.5, 12.5),
        ("15", 15.0),
        ("R$1.234,5", 1.234),
        ("abc", None),
        ("", None),
        (None, None),
    ])
    def test_price_conversion(self, mapping, raw, expected):
        record = apply_column_mapping([{"Preço": raw}], mapping)[0]
        assert record["pf_sem_impostos"] == (pytest.approx(expected) if expected else expected)

    @pytest.mark.parametrize("raw,expected", [
        ("10/03/2025", "2025-03-10"),
        ("2025-03-10", "2025-03-10"),
        (45726, "2025-03-10"),
        ("", None),
        (None, None),
    ])
    def test_publication_date_conversion(self, mapping, raw, expected):
        record = apply_column_mapping([{"Data": raw}], mapping)[0]
        assert record["data_publicacao"] == expected

    def test_none_value_kept_as_none(self, mapping):
        record = apply_column_mapping([{"Nome": None}], mapping)[0]
        assert record["produto"] is None
