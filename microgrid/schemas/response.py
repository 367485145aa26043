"""Response envelope shared by the microgrid endpoints.

    {"success": true, "data": {...}, "message": "..."}
"""

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel


class ApiResponse(BaseModel):
    success: bool = True
    data: Any = None
    message: Optional[str] = None


def success_response(data: Any = None, message: Optional[str] = None) -> ApiResponse:
    return ApiResponse(success=True, data=jsonable_encoder(data, by_alias=True), message=message)
