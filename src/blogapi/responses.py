"""Uniform response envelope shared by every endpoint."""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Successful response wrapper."""

    success: bool = True
    message: str = "Success"
    data: Optional[T] = None


def ok(data: Any = None, message: str = "Success") -> Dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def api_response(
    data: Any = None,
    message: str = "Success",
    status_code: int = 200,
    errors: Optional[Dict[str, List[str]]] = None,
) -> JSONResponse:
    """Build a JSON response whose ``success`` flag follows the status code."""
    content: Dict[str, Any] = {
        "success": 200 <= status_code < 300,
        "message": message,
        "data": jsonable_encoder(data),
    }
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)
