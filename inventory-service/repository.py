"""Stockage des produits dans un fichier JSON unique.

Chaque opération relit le fichier complet, applique sa modification et
réécrit le tableau entier. Aucun cache n'est conservé entre deux appels.
"""
import json
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from exceptions import StorageError
from models import Product, next_product_id

WRITE_FAILED = "Error al escribir productos"


def _entry_ids(entries: List[Any]) -> Iterator[int]:
    # IDs encore réservés par les entrées illisibles
    for entry in entries:
        if isinstance(entry, dict) and type(entry.get("id")) is int:
            yield entry["id"]


class ProductRepository(ABC):
    """Interface du dépôt, pour pouvoir brancher un stockage transactionnel."""

    @abstractmethod
    def list_all(self) -> List[Product]:
        """Retourne tous les produits; [] si le stockage est illisible."""

    @abstractmethod
    def get_by_id(self, product_id: Optional[int]) -> Optional[Product]:
        """Retourne le produit ou None (toujours None pour un ID None)."""

    @abstractmethod
    def create(self, draft: Dict[str, Any]) -> Product:
        """Ajoute un produit avec un nouvel ID unique."""

    @abstractmethod
    def update(self, product_id: int, patch: Dict[str, Any]) -> Optional[Product]:
        """Fusionne les champs fournis; None si l'ID n'existe pas."""

    @abstractmethod
    def delete(self, product_id: int) -> bool:
        """Supprime le produit; False si l'ID n'existe pas."""


class JsonProductRepository(ProductRepository):

    def __init__(self, file_path: Union[str, Path]):
        self._file_path = Path(file_path)
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        return self._file_path

    def list_all(self) -> List[Product]:
        return self._load()[0]

    def get_by_id(self, product_id: Optional[int]) -> Optional[Product]:
        return next((p for p in self._load()[0] if p.id == product_id), None)

    def create(self, draft: Dict[str, Any]) -> Product:
        with self._lock:
            products, unreadable = self._load()
            new_product = Product(
                id=next_product_id(products, reserved=_entry_ids(unreadable)),
                name=draft["name"],
                price=draft["price"],
                quantity=draft["quantity"],
            )
            products.append(new_product)
            self._persist(products, unreadable)
        logger.info(f"Product created with ID {new_product.id}")
        return new_product

    def update(self, product_id: int, patch: Dict[str, Any]) -> Optional[Product]:
        with self._lock:
            products, unreadable = self._load()
            index = self._index_of(products, product_id)
            if index is None:
                return None
            # L'ID stocké reste toujours la clé de recherche
            updated = products[index].model_copy(update={**patch, "id": product_id})
            products[index] = updated
            self._persist(products, unreadable)
        logger.info(f"Product {product_id} updated: {sorted(patch)}")
        return updated

    def delete(self, product_id: int) -> bool:
        with self._lock:
            products, unreadable = self._load()
            index = self._index_of(products, product_id)
            if index is None:
                return False
            del products[index]
            self._persist(products, unreadable)
        logger.info(f"Product {product_id} deleted")
        return True

    @staticmethod
    def _index_of(products: List[Product], product_id: int) -> Optional[int]:
        return next((i for i, p in enumerate(products) if p.id == product_id), None)

    def _load(self) -> Tuple[List[Product], List[Any]]:
        """Lit le fichier et sépare les produits valides des entrées illisibles.

        Fichier absent ou JSON corrompu => inventaire vide. Une entrée qui ne
        ressemble pas à un produit est ignorée en lecture mais conservée telle
        quelle à la prochaine écriture.
        """
        try:
            raw = json.loads(self._file_path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError(f"expected a JSON array, got {type(raw).__name__}")
        except FileNotFoundError:
            logger.warning(f"Products file {self._file_path} not found, starting empty")
            return [], []
        except (OSError, ValueError) as exc:
            logger.bind(file=str(self._file_path)).error(f"Error al leer productos: {exc}")
            return [], []

        products, unreadable = [], []
        for position, item in enumerate(raw):
            try:
                products.append(Product.model_validate(item))
            except PydanticValidationError as exc:
                logger.bind(file=str(self._file_path)).warning(
                    f"Skipping unreadable product entry #{position}: {exc.error_count()} error(s)"
                )
                unreadable.append(item)
        return products, unreadable

    def _persist(self, products: List[Product], unreadable: List[Any]) -> None:
        content = json.dumps(
            [p.model_dump() for p in products] + unreadable, indent=2, ensure_ascii=False
        )
        tmp_path = self._file_path.with_name(self._file_path.name + ".tmp")
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(content + "\n", encoding="utf-8")
            os.replace(tmp_path, self._file_path)
        except OSError as exc:
            logger.bind(file=str(self._file_path)).error(f"Error al escribir productos: {exc}")
            if tmp_path.exists():
                tmp_path.unlink()
            raise StorageError(WRITE_FAILED, error=str(exc)) from exc
