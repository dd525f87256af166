from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, field_validator


class ProductCreate(BaseModel):
    # strict: pas de conversion "10" -> 10, ni de booléens acceptés comme nombres
    name: str = Field(min_length=1, strict=True)
    price: float = Field(gt=0, strict=True, allow_inf_nan=False)
    quantity: int = Field(ge=0, strict=True)


class ProductUpdate(BaseModel):
    # Un champ absent reste None; un null explicite est rejeté
    name: Optional[str] = Field(default=None, min_length=1, strict=True)
    price: Optional[float] = Field(default=None, gt=0, strict=True, allow_inf_nan=False)
    quantity: Optional[int] = Field(default=None, ge=0, strict=True)

    @field_validator("name", "price", "quantity", mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("null is not allowed")
        return value


class ProductResponse(BaseModel):
    id: int
    name: str
    price: float
    quantity: Union[int, float]

    class Config:
        from_attributes = True


class ProductEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: ProductResponse


class ProductListEnvelope(BaseModel):
    success: bool = True
    data: List[ProductResponse]
    count: int


class ErrorEnvelope(BaseModel):
    success: bool = False
    message: str
    error: Optional[str] = None


class ApiInfo(BaseModel):
    message: str
    version: str
    endpoints: Dict[str, Any]
