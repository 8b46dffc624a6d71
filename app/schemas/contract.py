from typing import Optional

from pydantic import BaseModel


class CreateContract(BaseModel):
    policy: Optional[dict] = None
