"""
Category keyword table.

Category name -> ordered keywords matched against the issuer name of a fiscal
note. Order is significant: on equal keyword length the first-listed category
wins, so more specific categories sit above broader ones.

Bump KEYWORD_TABLE_VERSION whenever a keyword is added, removed or moved;
categorization results are only reproducible for a fixed table version.
"""

from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

import yaml

from ..errors import ConfigurationError

KEYWORD_TABLE_VERSION = "2025.1"

KeywordTable = Mapping[str, tuple[str, ...]]

_DEFAULT_TABLE: dict[str, tuple[str, ...]] = {
    "Alimentação": (
        "supermercado",
        "supermercados",
        "hipermercado",
        "mercearia",
        "mercado",
        "atacadista",
        "atacadão",
        "atacadao",
        "hortifruti",
        "sacolão",
        "sacolao",
        "padaria",
        "panificadora",
        "açougue",
        "acougue",
        "frigorífico",
        "frigorifico",
        "laticínios",
        "laticinios",
        "restaurante",
        "lanchonete",
        "pizzaria",
        "churrascaria",
        "sorveteria",
        "cafeteria",
        "distribuidora de alimentos",
        "alimentos",
        "bebidas",
        "bretas",
        "carrefour",
        "assaí",
        "assai",
    ),
    "Transporte": (
        "auto posto",
        "posto de combustível",
        "posto de combustivel",
        "posto",
        "combustíveis",
        "combustiveis",
        "combustível",
        "combustivel",
        "petrobras",
        "ipiranga",
        "shell",
        "auto peças",
        "auto pecas",
        "autopeças",
        "autopecas",
        "pneus",
        "oficina mecânica",
        "oficina mecanica",
        "estacionamento",
        "pedágio",
        "pedagio",
        "lava jato",
        "rodoviária",
        "rodoviaria",
        "uber",
    ),
    "Saúde": (
        "drogaria",
        "farmácia",
        "farmacia",
        "drogasil",
        "droga raia",
        "pague menos",
        "laboratório",
        "laboratorio",
        "clínica",
        "clinica",
        "hospital",
        "odontologia",
        "ótica",
        "otica",
        "produtos hospitalares",
    ),
    "Moradia": (
        "materiais de construção",
        "materiais de construcao",
        "material de construção",
        "material de construcao",
        "home center",
        "madeireira",
        "vidraçaria",
        "vidracaria",
        "ferragens",
        "ferragista",
        "tintas",
        "elétrica",
        "eletrica",
        "hidráulica",
        "hidraulica",
        "móveis",
        "moveis",
        "eletrodomésticos",
        "eletrodomesticos",
        "cemig",
        "copasa",
        "energia",
        "saneamento",
    ),
    "Lazer": (
        "cinema",
        "teatro",
        "clube",
        "hotel",
        "pousada",
        "turismo",
        "viagens",
        "ingressos",
        "parque",
        "academia",
    ),
    "Educação": (
        "livraria",
        "papelaria",
        "escola",
        "colégio",
        "colegio",
        "faculdade",
        "universidade",
        "educacional",
        "cursos",
        "editora",
    ),
    "Vestuário": (
        "calçados",
        "calcados",
        "confecções",
        "confeccoes",
        "vestuário",
        "vestuario",
        "boutique",
        "modas",
        "magazine",
        "renner",
        "riachuelo",
        "c&a",
    ),
    "Outros": (
        "correios",
        "cartório",
        "cartorio",
        "telecomunicações",
        "telecomunicacoes",
        "informática",
        "informatica",
    ),
}

DEFAULT_KEYWORD_TABLE: KeywordTable = MappingProxyType(_DEFAULT_TABLE)


def load_keyword_table(path: Optional[Path] = None) -> KeywordTable:
    """
    Load a keyword table from YAML, or return the built-in one.

    The YAML file is a mapping of category name to a list of keywords;
    mapping order is preserved and becomes the tie-break order.

    Raises:
        ConfigurationError: the file is missing or is not a name -> list mapping
    """
    if path is None:
        return DEFAULT_KEYWORD_TABLE

    if not path.exists():
        raise ConfigurationError(f"Keyword table not found: {path}")
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Keyword table must be a mapping: {path}")

    table: dict[str, tuple[str, ...]] = {}
    for category, keywords in data.items():
        if not isinstance(keywords, list):
            raise ConfigurationError(f"Keywords for {category!r} must be a list: {path}")
        table[str(category)] = tuple(str(k).strip().lower() for k in keywords if str(k).strip())
    return MappingProxyType(table)
