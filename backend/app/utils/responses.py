"""
Shared response helper — every endpoint answers {success, message, data}.
"""
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def respond(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, mode="json")
    elif isinstance(data, list):
        data = [
            d.model_dump(by_alias=True, mode="json") if isinstance(d, BaseModel) else d
            for d in data
        ]
    return JSONResponse(
        status_code=status_code,
        content={"success": 200 <= status_code < 400, "message": message, "data": jsonable_encoder(data)},
    )
