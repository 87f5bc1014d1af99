"""Response envelope shared by every route.

Every response, success or failure, has the shape::

    {"success": bool, "statusCode": int, "message": str, "data": dict}
"""

import re
from collections.abc import Sequence
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from tenantauth.core.exceptions import ServiceError

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class CamelModel(BaseModel):
    """Request/response model exchanged in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _payload(data: BaseModel | dict[str, Any] | None) -> dict[str, Any]:
    if data is None:
        return {}
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True)
    return data


def success_response(
    message: str,
    data: BaseModel | dict[str, Any] | None = None,
    status_code: int = 200,
) -> JSONResponse:
    """Build an envelope for a handled request.

    Negative answers such as an unavailable name carry a 4xx status and
    ``success: false``.
    """
    return JSONResponse(
        status_code=status_code,
        content={
            "success": status_code < 400,
            "statusCode": status_code,
            "message": message,
            "data": _payload(data),
        },
    )


def error_response(error: ServiceError) -> JSONResponse:
    """Build a failure envelope from a service error."""
    return JSONResponse(
        status_code=error.status_code,
        content={
            "success": False,
            "statusCode": error.status_code,
            "message": error.code,
            "data": error.data,
        },
    )


def validation_code(errors: Sequence[Any]) -> str:
    """Derive a message code from the first request-validation error.

    ``("body", "firstName")`` missing becomes ``FIRST_NAME_REQUIRED``; any
    other failure on that field becomes ``FIRST_NAME_INVALID``.
    """
    if not errors:
        return "INVALID_REQUEST"
    first = errors[0]
    fields = [str(part) for part in first.get("loc", ()) if isinstance(part, str)]
    fields = [part for part in fields if part not in ("body", "query", "path", "header")]
    if not fields:
        return "INVALID_REQUEST"
    field = _CAMEL_BOUNDARY.sub("_", fields[-1]).upper()
    suffix = "REQUIRED" if first.get("type") == "missing" else "INVALID"
    return f"{field}_{suffix}"
