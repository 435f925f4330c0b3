"""Connector routes called by the sign-in UI.

All handlers resolve the caller's pooled connector session through
ConnectorService. Domain and connector errors are returned as JSON error
envelopes rather than raised to FastAPI.
"""

import logging

from fastapi import APIRouter, Depends

from src.api.deps import get_client_ip, get_connector_service, get_session_id
from src.api.errors import app_error_response, domain_error_response, internal_error
from src.errors import DataPortraitError, DomainError
from src.services.connector_service import ConnectorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/getgather", tags=["connectors"])


@router.get("/purchase-history/{brand_id}")
async def purchase_history(
    brand_id: str,
    session_id: str = Depends(get_session_id),
    client_ip: str = Depends(get_client_ip),
    service: ConnectorService = Depends(get_connector_service),
):
    """Start a connection or return the brand's raw purchase history."""
    try:
        result = await service.purchase_history(session_id, client_ip, brand_id)
        return result.model_dump()
    except DomainError as e:
        return domain_error_response(e)
    except DataPortraitError as e:
        return app_error_response(e)
    except Exception as e:
        return internal_error(e, "purchase history")


@router.get("/purchase-history-details/{brand_id}/{order_id}")
async def purchase_history_details(
    brand_id: str,
    order_id: str,
    session_id: str = Depends(get_session_id),
    client_ip: str = Depends(get_client_ip),
    service: ConnectorService = Depends(get_connector_service),
):
    """Return line-item details for one order ({} when none)."""
    try:
        result = await service.purchase_history_details(
            session_id, client_ip, brand_id, order_id,
        )
        return result.model_dump() if result is not None else {}
    except DomainError as e:
        return domain_error_response(e)
    except DataPortraitError as e:
        return app_error_response(e)
    except Exception as e:
        return internal_error(e, "purchase history details")


@router.get("/mcp-poll/{brand_id}/{link_id}")
async def mcp_poll(
    brand_id: str,
    link_id: str,
    session_id: str = Depends(get_session_id),
    client_ip: str = Depends(get_client_ip),
    service: ConnectorService = Depends(get_connector_service),
):
    """Report whether a hosted-link sign-in has finished."""
    try:
        result = await service.poll_signin(session_id, client_ip, brand_id, link_id)
        return result.model_dump()
    except DomainError as e:
        return domain_error_response(e)
    except DataPortraitError as e:
        return app_error_response(e)
    except Exception as e:
        return internal_error(e, "sign-in poll")


@router.get("/dpage-url/{brand_id}")
async def dpage_url(
    brand_id: str,
    session_id: str = Depends(get_session_id),
    client_ip: str = Depends(get_client_ip),
    service: ConnectorService = Depends(get_connector_service),
):
    """Return the embedded sign-in resource for a brand."""
    try:
        result = await service.dpage_url(session_id, client_ip, brand_id)
        return result.model_dump()
    except DomainError as e:
        return domain_error_response(e)
    except DataPortraitError as e:
        return app_error_response(e)
    except Exception as e:
        return internal_error(e, "embedded sign-in")


@router.get("/dpage-signin-check/{brand_id}/{link_id}")
async def dpage_signin_check(
    brand_id: str,
    link_id: str,
    session_id: str = Depends(get_session_id),
    client_ip: str = Depends(get_client_ip),
    service: ConnectorService = Depends(get_connector_service),
):
    """Report whether an embedded sign-in has finished, with its records."""
    try:
        result = await service.dpage_signin_check(session_id, client_ip, brand_id, link_id)
        return result.model_dump()
    except DomainError as e:
        return domain_error_response(e)
    except DataPortraitError as e:
        return app_error_response(e)
    except Exception as e:
        return internal_error(e, "embedded sign-in check")
