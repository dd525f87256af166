"""Erreurs du service d'inventaire.

Toutes les erreurs métier héritent de InventoryError pour que l'application
FastAPI puisse les convertir uniformément en enveloppe {success: false, ...}.
"""
from typing import Optional


class InventoryError(Exception):
    """Classe de base: message lisible + détail de diagnostic optionnel."""

    status_code = 500
    error_type = "internal"

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationError(InventoryError):
    """Requête invalide (champ manquant, mauvais type, hors limites, ID non numérique)."""

    status_code = 400
    error_type = "validation"


class ProductNotFoundError(InventoryError):
    status_code = 404
    error_type = "not_found"


class StorageError(InventoryError):
    """Échec de lecture ou d'écriture du fichier de produits."""

    status_code = 500
    error_type = "storage"
