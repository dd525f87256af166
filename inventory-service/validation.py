"""Validation des requêtes: ID de chemin, corps JSON et champs produit.

Les messages renvoyés au client sont en espagnol, comme le reste de l'API.
"""
import json
import re
from typing import Any, Dict, Optional

from fastapi import Request
from pydantic import ValidationError as PydanticValidationError

from exceptions import ValidationError
from schemas import ProductCreate, ProductUpdate

INVALID_ID = "El ID debe ser un número válido"
INVALID_BODY = "El cuerpo de la petición no es un JSON válido"
MISSING_FIELDS = "Faltan datos requeridos. Se necesitan: name, price, quantity"
INVALID_TYPES = "Tipos de datos inválidos. name debe ser string, price y quantity deben ser números"
OUT_OF_RANGE = "El precio debe ser mayor a 0 y la cantidad no puede ser negativa"
EMPTY_NAME = "El nombre no puede estar vacío"
INVALID_NAME = "El nombre debe ser una cadena de texto"
INVALID_PRICE = "El precio debe ser un número mayor a 0"
INVALID_QUANTITY = "La cantidad debe ser un número mayor o igual a 0"
EMPTY_PATCH = "No se proporcionaron datos para actualizar"

PRODUCT_FIELDS = ("name", "price", "quantity")

# Erreurs pydantic qui signalent une valeur hors limites (et non un mauvais type)
RANGE_ERRORS = {"greater_than", "greater_than_equal", "string_too_short", "finite_number"}

_NUMBER_RE = re.compile(r"^\s*([+-]?)(\d*)(\.\d*)?([eE][+-]?\d+)?\s*$")


def parse_product_id(raw: str) -> Optional[int]:
    """Convertit l'ID du chemin en clé entière.

    Tout littéral numérique est accepté ("12", "12.0", "1e3"); la clé est la
    partie entière telle qu'écrite, avant la fraction et l'exposant.
    Sans chiffre avant la virgule (".5") il n'y a pas de clé: None, qui ne
    correspond à aucun produit.
    """
    match = _NUMBER_RE.match(raw)
    if not match:
        raise ValidationError(INVALID_ID)
    sign, digits, fraction, _ = match.groups()
    if not digits and (fraction or "") in ("", "."):
        raise ValidationError(INVALID_ID)
    if not digits:
        return None
    return int(sign + digits)


async def read_payload(request: Request) -> Dict[str, Any]:
    body = await request.body()
    if not body.strip():
        return {}
    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationError(INVALID_BODY)
    # Un tableau ou un scalaire JSON ne fournit aucun champ
    return payload if isinstance(payload, dict) else {}


def validate_create(payload: Dict[str, Any]) -> ProductCreate:
    fields = {k: payload[k] for k in PRODUCT_FIELDS if payload.get(k) is not None}
    if len(fields) < len(PRODUCT_FIELDS):
        raise ValidationError(MISSING_FIELDS)

    try:
        return ProductCreate.model_validate(fields)
    except PydanticValidationError as exc:
        errors = exc.errors()

    range_errors = [e for e in errors if e["type"] in RANGE_ERRORS]
    if len(range_errors) < len(errors):
        raise ValidationError(INVALID_TYPES)
    if any(e["loc"][0] == "name" for e in range_errors):
        raise ValidationError(EMPTY_NAME)
    raise ValidationError(OUT_OF_RANGE)


def validate_update(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Retourne le patch validé: uniquement les champs fournis dans le corps."""
    fields = {k: payload[k] for k in PRODUCT_FIELDS if k in payload}

    try:
        update = ProductUpdate.model_validate(fields)
    except PydanticValidationError as exc:
        # Premier champ en erreur, dans l'ordre name, price, quantity
        error = exc.errors()[0]
        field = error["loc"][0]
        if field == "name":
            if error["type"] == "string_too_short":
                raise ValidationError(EMPTY_NAME)
            raise ValidationError(INVALID_NAME)
        if field == "price":
            raise ValidationError(INVALID_PRICE)
        raise ValidationError(INVALID_QUANTITY)

    patch = update.model_dump(exclude_unset=True)
    if not patch:
        raise ValidationError(EMPTY_PATCH)
    return patch
