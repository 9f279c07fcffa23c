"""Tests for issuer name categorization."""

import pytest

from dfe_sync.categorization import (
    DEFAULT_KEYWORD_TABLE,
    best_match,
    categorize,
    load_keyword_table,
    normalize_name,
)
from dfe_sync.errors import ConfigurationError


class TestCategorize:
    """Tests for the longest-keyword heuristic."""

    def test_supermarket_is_food(self):
        assert categorize("Supermercado Bretas Caratinga") == "Alimentação"

    def test_gas_station_is_transport(self):
        assert categorize("Auto Posto Shell") == "Transporte"

    def test_deterministic(self):
        results = {categorize("Auto Posto Shell") for _ in range(20)}
        assert results == {"Transporte"}

    def test_longest_keyword_wins(self):
        """'auto posto' beats 'posto' and 'shell'."""
        match = best_match("Auto Posto Shell")
        assert match.keyword == "auto posto"

    def test_accents_folded(self):
        assert categorize("FARMACIA SAO JOAO") == "Saúde"
        assert categorize("Farmácia São João") == "Saúde"

    def test_punctuation_collapsed(self):
        assert categorize("MATERIAIS-DE-CONSTRUCAO SILVA") == "Moradia"

    def test_raw_form_keeps_symbols(self):
        assert categorize("C&A MODAS LTDA") == "Vestuário"

    def test_no_match_returns_none(self):
        assert categorize("XYZ Participacoes S.A.") is None

    def test_empty_name_returns_none(self):
        assert categorize(None) is None
        assert categorize("") is None

    def test_tie_goes_to_first_listed_category(self):
        table = {"First": ("abcd",), "Second": ("bcde",)}
        assert categorize("abcde", table) == "First"

    def test_normalize_name(self):
        assert normalize_name("  Padaria  Pão-de-Açúcar!! ") == "padaria pao de acucar"


class TestKeywordTable:
    """Tests for keyword table loading."""

    def test_default_table_is_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_KEYWORD_TABLE["Novo"] = ("x",)

    def test_none_returns_default(self):
        assert load_keyword_table(None) is DEFAULT_KEYWORD_TABLE

    def test_load_yaml_override(self, tmp_path):
        path = tmp_path / "keywords.yaml"
        path.write_text("Pets:\n  - Pet Shop\n  - veterinaria\nAlimentação:\n  - mercado\n", encoding="utf-8")

        table = load_keyword_table(path)

        assert list(table) == ["Pets", "Alimentação"]
        assert table["Pets"] == ("pet shop", "veterinaria")
        assert categorize("Pet Shop Amigo", table) == "Pets"

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_keyword_table(tmp_path / "missing.yaml")

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "keywords.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_keyword_table(path)

    def test_non_list_keywords_raise(self, tmp_path):
        path = tmp_path / "keywords.yaml"
        path.write_text("Pets: veterinaria\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_keyword_table(path)
