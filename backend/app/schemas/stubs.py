from typing import Any, Dict, Optional

from pydantic import BaseModel


class StubResponse(BaseModel):
    status: str = "success"
    message: str
    data: Optional[Dict[str, Any]] = None
