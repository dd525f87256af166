from typing import Iterable, List, Union
from pydantic import BaseModel


class Product(BaseModel):
    id: int
    name: str
    price: float
    # Les anciens fichiers peuvent contenir des quantités décimales
    quantity: Union[int, float]


def next_product_id(products: List[Product], reserved: Iterable[int] = ()) -> int:
    # Compteur initialisé à partir du plus grand ID existant
    ids = [p.id for p in products] + list(reserved)
    return max(ids) + 1 if ids else 1
