"""
FastAPI dependencies.

JWT authentication plus the providers that assemble the domain services
for a request. Each request gets its own session; every service built for
that request shares it.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.jwt import decode_access_token
from backend.app.db.session import get_db
from backend.app.domain.dispatch.resource_registry import ResourceRegistry
from backend.app.domain.dispatch.trip_lifecycle import TripLifecycleManager
from backend.app.domain.dispatch.trip_store import TripStore
from backend.app.domain.invoicing.invoice_issuer import InvoiceIssuer
from backend.app.services.audit import AuditLogger
from backend.app.services.authorization import SqlTeamAuthorizer
from backend.app.services.fiscal_documents import FiscalDocumentService
from backend.app.services.object_storage import ObjectStorage

# HTTP Bearer security scheme; a missing header is reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Tokens are issued by the accounts service; this side only checks the
    signature and expiry and reads the user id.

    Returns:
        Decoded token payload containing user information

    Raises:
        HTTPException: 401 if the token is missing, invalid or carries no user id
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("user_id"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


def get_fiscal_service(request: Request) -> FiscalDocumentService:
    return request.app.state.fiscal_service


def get_object_storage(request: Request) -> ObjectStorage:
    return request.app.state.object_storage


def get_invoice_issuer(
    db: AsyncSession = Depends(get_db),
    fiscal_service: FiscalDocumentService = Depends(get_fiscal_service),
    storage: ObjectStorage = Depends(get_object_storage),
) -> InvoiceIssuer:
    return InvoiceIssuer(
        db,
        fiscal_service=fiscal_service,
        storage=storage,
        audit=AuditLogger(db),
        authorizer=SqlTeamAuthorizer(db),
    )


def get_trip_manager(
    db: AsyncSession = Depends(get_db),
    invoice_issuer: InvoiceIssuer = Depends(get_invoice_issuer),
) -> TripLifecycleManager:
    return TripLifecycleManager(
        db,
        registry=ResourceRegistry(db),
        store=TripStore(db),
        authorizer=SqlTeamAuthorizer(db),
        invoice_issuer=invoice_issuer,
        audit=AuditLogger(db),
    )
