"""
Interpreter — Convierte la respuesta cruda de un agente en un payload tipado.

Los agentes responden con un objeto ya estructurado o con texto que puede
traer JSON embebido en prosa o en un bloque markdown. El parseo tiene dos
etapas explícitas:

1. Localizar: contenido del bloque ``` si existe, si no el texto completo;
   dentro de esa región cada `{` es un inicio candidato y se prueban los
   spans `{...}` balanceados de izquierda a derecha (ignorando llaves
   dentro de strings).
2. Parsear: json.loads estricto; si falla, una sola pasada de reparación
   (comas finales, comillas simples) y un reintento.

Si nada funciona devuelve `Uninterpretable`: el caller lo trata como
"sin payload", nunca como error fatal.
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, Optional, Union

from pydantic import ValidationError

from agent.models import (
    AgentPayload,
    ApprovalRequest,
    Citation,
    LeadInfo,
    RevenueEntry,
    Ticket,
    Uninterpretable,
    UpsellOffer,
)

logger = logging.getLogger(__name__)


_FENCE_RE = re.compile(r"```[ \t]*(?:json|JSON)?[ \t]*\n?(.*?)```", re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

# Anotaciones que se leen del payload → modelo
_ANNOTATIONS = {
    "ticket": Ticket,
    "lead_info": LeadInfo,
    "upsell_offer": UpsellOffer,
    "approval_request": ApprovalRequest,
    "revenue_entry": RevenueEntry,
}


def interpret(raw: Any) -> Union[AgentPayload, Uninterpretable]:
    """
    Interpreta la respuesta de un agente.

    Args:
        raw: AgentPayload, dict ya estructurado, o texto libre.

    Returns:
        AgentPayload si se encontró un objeto JSON, si no Uninterpretable.
    """
    if isinstance(raw, AgentPayload):
        return raw

    if isinstance(raw, dict):
        return build_payload(raw)

    if not isinstance(raw, str):
        return Uninterpretable(
            reason=f"tipo no soportado: {type(raw).__name__}",
            text="" if raw is None else str(raw),
        )

    if not raw.strip():
        return Uninterpretable(reason="respuesta vacía", text=raw)

    data = extract_json_object(raw)
    if data is None:
        logger.warning(f"Respuesta sin JSON interpretable: {raw[:60]!r}")
        return Uninterpretable(reason="no se encontró un objeto JSON", text=raw)

    return build_payload(data)


# Etapa 1: localizar


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Devuelve el primer objeto JSON que se pueda parsear dentro del texto."""
    fence = _FENCE_RE.search(text)
    regions = [fence.group(1), text] if fence else [text]

    for region in regions:
        stripped = region.strip()
        if stripped.startswith("{") and stripped.endswith("}"):
            parsed = parse_with_repair(stripped)
            if isinstance(parsed, dict):
                return parsed

        # Primero solo comillas dobles (JSON); después también simples,
        # para objetos que solo parsean con la reparación
        for quotes in ('"', "\"'"):
            for span in iter_balanced_spans(region, quotes):
                parsed = parse_with_repair(span)
                if isinstance(parsed, dict):
                    return parsed
    return None


def iter_balanced_spans(text: str, quotes: str = '"') -> Iterator[str]:
    """
    Recorre los spans `{...}` balanceados, de izquierda a derecha.

    Cada `{` es un inicio candidato y se escanea por separado: una llave
    suelta en la prosa o un span sin cerrar no tapan el JSON que viene
    después. `quotes` son los delimitadores de string que se respetan.
    """
    start = text.find("{")
    while start != -1:
        end = _span_end(text, start, quotes)
        if end is not None:
            yield text[start : end + 1]
        start = text.find("{", start + 1)


def _span_end(text: str, start: int, quotes: str) -> Optional[int]:
    """Índice de la `}` que cierra la llave en `start`, o None."""
    depth = 0
    quote: Optional[str] = None
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if quote is not None:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue

        if ch in quotes:
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


# Etapa 2: parsear


def parse_with_repair(candidate: str) -> Any:
    """json.loads estricto; si falla, repara una vez y reintenta. None si no parsea."""
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    repaired = repair_json(candidate)
    if repaired == candidate:
        return None
    try:
        return json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.debug(f"JSON irreparable ({e}): {candidate[:60]!r}")
        return None


def repair_json(candidate: str) -> str:
    """Reparaciones acotadas: comillas simples → dobles y comas finales."""
    return _TRAILING_COMMA_RE.sub(r"\1", _convert_single_quotes(candidate))


def _convert_single_quotes(text: str) -> str:
    """Convierte strings con comillas simples a comillas dobles.

    Respeta los strings que ya usan comillas dobles (un apóstrofe adentro
    queda igual) y escapa las comillas dobles que aparezcan dentro de un
    string simple.
    """
    out = []
    quote: Optional[str] = None
    escaped = False

    for ch in text:
        if quote is None:
            if ch == "'":
                quote = "'"
                out.append('"')
            else:
                if ch == '"':
                    quote = '"'
                out.append(ch)
            continue

        if escaped:
            escaped = False
            # \' no es un escape válido en JSON
            out.append("'" if ch == "'" and quote == "'" else "\\" + ch)
            continue
        if ch == "\\":
            escaped = True
            continue

        if ch == quote:
            quote = None
            out.append('"')
        elif ch == '"' and quote == "'":
            out.append('\\"')
        else:
            out.append(ch)

    return "".join(out)


# Lectura de campos


def build_payload(data: Dict[str, Any]) -> AgentPayload:
    """Lee los campos conocidos del mapping. Cada uno es opcional e independiente."""
    fields: Dict[str, Any] = {}
    rejected: Dict[str, str] = {}

    text = data.get("response_text")
    if isinstance(text, str) and text.strip():
        fields["response_text"] = text

    citations = data.get("citations")
    if isinstance(citations, (list, tuple)):
        parsed_citations = []
        for item in citations:
            if not isinstance(item, dict):
                continue
            try:
                parsed_citations.append(Citation.model_validate(item))
            except ValidationError:
                logger.debug(f"Cita descartada: {item!r}")
        fields["citations"] = parsed_citations

    for name, model in _ANNOTATIONS.items():
        value = data.get(name)
        if value is None or value == {}:
            continue
        if not isinstance(value, dict):
            rejected[name] = "no es un objeto"
            continue
        try:
            fields[name] = model.model_validate(value)
        except ValidationError as e:
            reason = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or name}: {err['msg']}"
                for err in e.errors()
            )
            logger.warning(f"Anotación '{name}' inválida: {reason}")
            rejected[name] = reason

    return AgentPayload(data=data, rejected=rejected, **fields)
