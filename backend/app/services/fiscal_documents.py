"""
Fiscal document service client (Facturapi).

Submits invoice data to the tax-document provider, downloads the signed
PDF/XML and cancels issued documents. All transport failures surface as
ExternalServiceError; calls go through a circuit breaker so a provider
outage fails fast instead of piling up PENDING invoices.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx
from pydantic import BaseModel

from backend.app.core.config import settings
from backend.app.core.exceptions import ExternalServiceError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

SERVICE_NAME = "facturapi"
DOCUMENT_FORMATS = ("pdf", "xml")


class FiscalDocument(BaseModel):
    """Identifiers returned for an issued document."""
    id: str
    uuid: Optional[str] = None
    series: Optional[str] = None
    folio: Optional[str] = None
    pdf_url: Optional[str] = None
    xml_url: Optional[str] = None


class FiscalDocumentService(Protocol):

    async def create_invoice(self, payload: Dict[str, Any]) -> FiscalDocument:
        ...

    async def download(self, document_id: str, fmt: str) -> bytes:
        ...

    async def cancel_invoice(self, document_id: str, reason: str = "01") -> Dict[str, Any]:
        ...


class FacturapiClient:

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 30.0,
        breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.breaker = breaker or CircuitBreaker(SERVICE_NAME)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls) -> "FacturapiClient":
        if not settings.facturapi_api_key:
            logger.warning("FACTURAPI_API_KEY is not set, invoice stamping will fail")
        return cls(
            api_key=settings.facturapi_api_key,
            base_url=settings.facturapi_api_url,
            timeout=settings.fiscal_api_timeout_seconds,
            breaker=CircuitBreaker(
                SERVICE_NAME,
                failure_threshold=settings.fiscal_breaker_failure_threshold,
                reset_timeout=settings.fiscal_breaker_reset_timeout,
            ),
        )

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async def send() -> httpx.Response:
            response = await self._client.request(method, path, json=json)
            response.raise_for_status()
            return response

        try:
            return await self.breaker.call(send)
        except CircuitOpenError as exc:
            raise ExternalServiceError(SERVICE_NAME, str(exc)) from exc
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:500]
            logger.error("Facturapi API error: %s - %s", exc.response.status_code, body)
            raise ExternalServiceError(
                SERVICE_NAME,
                f"{method} {path} returned {exc.response.status_code}",
                details={"status_code": exc.response.status_code, "body": body},
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Error making request to Facturapi: %r", exc)
            raise ExternalServiceError(SERVICE_NAME, f"{method} {path} failed: {exc!r}") from exc

    async def create_invoice(self, payload: Dict[str, Any]) -> FiscalDocument:
        """
        Issue a fiscal invoice.

        Args:
            payload: Request body built by the invoice issuer

        Returns:
            FiscalDocument with provider id, uuid, series/folio and download URLs
        """
        response = await self._request("POST", "/invoices", json=payload)
        data = response.json()
        document_id = data.get("id")
        if not document_id:
            raise ExternalServiceError(SERVICE_NAME, "response did not include an invoice id")

        folio = data.get("folio_number", data.get("folio"))
        return FiscalDocument(
            id=document_id,
            uuid=data.get("uuid"),
            series=data.get("series"),
            folio=str(folio) if folio is not None else None,
            pdf_url=f"{self.base_url}/invoices/{document_id}/pdf",
            xml_url=f"{self.base_url}/invoices/{document_id}/xml",
        )

    async def download(self, document_id: str, fmt: str) -> bytes:
        if fmt not in DOCUMENT_FORMATS:
            raise ValueError(f"Unsupported document format: {fmt}")
        response = await self._request("GET", f"/invoices/{document_id}/{fmt}")
        return response.content

    async def cancel_invoice(self, document_id: str, reason: str = "01") -> Dict[str, Any]:
        response = await self._request("POST", f"/invoices/{document_id}/cancel", json={"reason": reason})
        return response.json() if response.content else {}

    async def aclose(self) -> None:
        await self._client.aclose()
