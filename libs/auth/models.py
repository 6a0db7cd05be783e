import enum
import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    PRODUCER = "producer"


class AuthUser(BaseModel):
    """
    Verified caller identity handed to every store operation.

    ``user_id`` is the customer id or the producer id depending on ``role``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: uuid.UUID = Field(..., alias="sub")
    role: Role
    email: Optional[EmailStr] = None

    @property
    def is_customer(self) -> bool:
        return self.role == Role.CUSTOMER

    @property
    def is_producer(self) -> bool:
        return self.role == Role.PRODUCER
