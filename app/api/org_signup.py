"""Organization self-service signup.

  POST /api/org-signup                     create organization + owner
  GET  /api/org-signup/slug-availability   live slug check for the wizard
  GET  /api/org-signup/email-availability  live email check for the wizard

All three answer ``{status: "success"|"error", message}``.  The POST body
is passed to the provisioning service unparsed, because the rate limit has
to be counted before validation runs.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.api.ratelimit import client_ip, rate_limiter
from app.repos.unit_of_work import UnitOfWork, get_uow
from app.services import provisioning_service
from app.services.email_service import email_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/org-signup", tags=["org-signup"])


async def _read_json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}


@router.post("")
async def org_signup(
    request: Request,
    uow: Annotated[UnitOfWork, Depends(get_uow)],
) -> JSONResponse:
    values = await _read_json_object(request)
    result = await provisioning_service.create_organization_with_admin(
        uow,
        values,
        client_key=client_ip(request),
        rate_limiter=rate_limiter,
        email_client=email_client,
    )
    return JSONResponse(status_code=result.http_status, content=result.as_dict())


@router.get("/slug-availability")
async def slug_availability(
    uow: Annotated[UnitOfWork, Depends(get_uow)],
    slug: Annotated[str, Query()] = "",
) -> dict[str, str]:
    result = await provisioning_service.check_slug_availability(uow, slug.strip())
    return result.as_dict()


@router.get("/email-availability")
async def email_availability(
    uow: Annotated[UnitOfWork, Depends(get_uow)],
    email: Annotated[str, Query()] = "",
) -> dict[str, str]:
    result = await provisioning_service.check_email_availability(uow, email)
    return result.as_dict()
