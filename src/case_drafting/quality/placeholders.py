"""Template placeholders left behind in drafts and the fields that fill them."""

import re
from typing import Any, List, Optional

from ..consolidation.consolidator import is_empty
from ..models.extraction import CaseRecord


PLACEHOLDER_TOKEN = re.compile(r"\[(?P<bracket>[A-Z][A-Z_]+)\]|\{\{\s*(?P<brace>[A-Za-z_]+)\s*\}\}")

PLACEHOLDER_FIELDS = {
    "AUTOR_NOME": "author_name",
    "AUTOR_CPF": "author_cpf",
    "AUTOR_RG": "author_rg",
    "AUTOR_ENDERECO": "author_address",
    "AUTOR_DATA_NASCIMENTO": "author_birth_date",
    "AUTOR_ESTADO_CIVIL": "author_marital_status",
    "AUTOR_TELEFONE": "author_phone",
    "AUTOR_WHATSAPP": "author_whatsapp",
    "FILHO_NOME": "child_name",
    "FILHO_DATA_NASCIMENTO": "child_birth_date",
    "PAI_NOME": "father_name",
    "RA_PROTOCOLO": "ra_protocol",
    "RA_DATA_REQUERIMENTO": "ra_request_date",
    "RA_DATA_INDEFERIMENTO": "ra_denial_date",
    "RA_MOTIVO_NEGATIVA": "ra_denial_reason",
    "PROPRIETARIO_NOME": "land_owner_name",
    "PROPRIETARIO_CPF": "land_owner_cpf",
    "PROPRIETARIO_RG": "land_owner_rg",
    "TIPO_PROPRIEDADE": "land_ownership_type",
    "NOME_PROPRIEDADE": "land_property_name",
    "MUNICIPIO_PROPRIEDADE": "land_municipality",
    "AREA_TOTAL": "land_total_area",
    "AREA_EXPLORADA": "land_exploited_area",
    "ITR": "land_itr",
    "ATIVIDADES_PLANTIO": "rural_activities_planting",
    "ATIVIDADES_CRIACAO": "rural_activities_breeding",
    "NIT": "nit",
}


def find_placeholder_tokens(text: str) -> List[str]:
    """Distinct placeholder names in order of first appearance."""
    tokens: List[str] = []
    for match in PLACEHOLDER_TOKEN.finditer(text or ""):
        token = (match.group("bracket") or match.group("brace")).upper()
        if token not in tokens:
            tokens.append(token)
    return tokens


def field_for_token(token: str) -> Optional[str]:
    """Case record field a placeholder refers to, if any."""
    token = token.upper()
    if token in PLACEHOLDER_FIELDS:
        return PLACEHOLDER_FIELDS[token]
    names = set(CaseRecord.scalar_field_names())
    for candidate in (f"author_{token.lower()}", token.lower()):
        if candidate in names:
            return candidate
    return None


def resolve_placeholder(token: str, record: CaseRecord) -> Optional[Any]:
    field_name = field_for_token(token)
    if field_name is None:
        return None
    value = getattr(record, field_name, None)
    return None if is_empty(value) else value


def fill_placeholders(text: str, record: CaseRecord) -> tuple[str, List[str], List[str]]:
    """
    Replace every placeholder that the case record can fill.

    Returns:
        Tuple of (new text, filled tokens, tokens left unresolved).
    """
    filled: List[str] = []
    unresolved: List[str] = []

    def _replace(match: re.Match) -> str:
        token = (match.group("bracket") or match.group("brace")).upper()
        value = resolve_placeholder(token, record)
        if value is None:
            if token not in unresolved:
                unresolved.append(token)
            return match.group(0)
        if token not in filled:
            filled.append(token)
        return str(value)

    return PLACEHOLDER_TOKEN.sub(_replace, text or ""), filled, unresolved
