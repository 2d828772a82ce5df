"""Line item domain models.

Amounts are floats with two meaningful decimals. `total` is derived from
quantity × unit_price and is validated, never trusted.
"""

from pydantic import BaseModel, Field, model_validator

from core.models.common import new_id
from utils.money import round_money


class LineItemCreate(BaseModel):
    """Data required to create a line item."""

    id: str = Field(default_factory=new_id, min_length=1)
    description: str = Field(..., min_length=1, max_length=500)
    quantity: float = Field(..., gt=0, le=999_999)
    unit_price: float = Field(..., ge=0, le=999_999.99)
    total: float | None = Field(None, ge=0)

    @model_validator(mode="after")
    def compute_total_if_missing(self) -> "LineItemCreate":
        """Compute total from quantity * unit_price if not provided."""
        if self.total is None:
            self.total = round_money(self.quantity * self.unit_price)
        return self


class LineItem(BaseModel):
    """Full line item entity as stored."""

    id: str
    description: str
    quantity: float
    unit_price: float
    total: float
