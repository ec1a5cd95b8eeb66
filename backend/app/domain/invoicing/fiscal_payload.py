"""
Fiscal document request assembly.

Turns a trip (client, cargo, driver, vehicle, route) plus the team's fiscal
profile into the invoice body the fiscal service expects.
"""

from html import escape
from typing import Any, Dict, List

from backend.app.models.team import TeamFiscalProfile
from backend.app.models.trip import Trip

TAX_TYPE = "IVA"


def build_customer(trip: Trip) -> Dict[str, Any]:
    client = trip.client
    return {
        "legal_name": client.name,
        "email": client.email,
        "tax_id": client.tax_id,
        "tax_system": client.tax_system,
        "address": {
            "zip": client.zip_code,
            "street": client.street,
            "exterior": client.exterior_number,
            "interior": client.interior_number,
            "neighborhood": client.neighborhood,
            "city": client.city,
            "state": client.state,
            "country": client.country,
        },
    }


def build_line_items(trip: Trip, profile: TeamFiscalProfile, tax_rate: float) -> List[Dict[str, Any]]:
    """
    One line item per cargo with the trip price split evenly between them.

    A trip without cargo rows is billed as a single item using the team's
    default product description.
    """
    taxes = [{"type": TAX_TYPE, "rate": tax_rate}]

    if not trip.cargos:
        return [{
            "quantity": 1,
            "product": {
                "description": profile.default_product_description,
                "product_key": profile.default_product_key,
                "price": trip.price,
                "taxes": taxes,
            },
        }]

    unit_price = round(trip.price / len(trip.cargos), 6)
    return [
        {
            "quantity": 1,
            "product": {
                "description": cargo.name,
                "product_key": profile.default_product_key,
                "price": unit_price,
                "taxes": taxes,
            },
        }
        for cargo in trip.cargos
    ]


def build_trip_section(trip: Trip) -> str:
    """HTML block printed on the PDF with the operational details of the trip."""
    vehicle = trip.vehicle
    lines = [
        "<h3>Información del Viaje</h3>",
        f"<p><strong>Conductor:</strong> {escape(trip.driver.name)}</p>",
        f"<p><strong>Vehículo:</strong> {escape(vehicle.plate)} - "
        f"{escape(vehicle.brand or '')} {escape(vehicle.model or '')}</p>",
        f"<p><strong>Ruta:</strong> {escape(trip.route.name)}</p>",
        f"<p><strong>Fecha de inicio:</strong> {trip.start_date:%Y-%m-%d}</p>",
        f"<p><strong>Fecha de fin:</strong> {trip.end_date:%Y-%m-%d}</p>",
    ]
    if trip.notes:
        lines.append(f"<p><strong>Notas:</strong> {escape(trip.notes)}</p>")
    return "\n".join(lines)


def build_fiscal_invoice(trip: Trip, profile: TeamFiscalProfile, tax_rate: float) -> Dict[str, Any]:
    return {
        "customer": build_customer(trip),
        "items": build_line_items(trip, profile, tax_rate),
        "use": profile.default_cfdi_use,
        "payment_form": profile.default_payment_form,
        "payment_method": profile.default_payment_method,
        "pdf_custom_section": build_trip_section(trip),
    }
