"""
Fixtures compartidos por las pruebas del preliquidador de retenciones.

La factura de referencia es una factura de servicios de una S.A.S. a una
empresa agente de retencion en Bogota, emitida en 2025.
"""

import os
from datetime import date
from decimal import Decimal

import pytest

# La API se importa sin Supabase: el repositorio en memoria pasa el health check
os.environ.setdefault("DATABASE_TYPE", "memoria")

from modelos import (
    ContextoTributarioFactura,
    EntidadTributaria,
    EstadoVerificacion,
    Factura,
    TipoEntidad,
    TipoRegimen,
    TipoServicio,
)
from database.database import MemoriaDatabase

NIT_PROVEEDOR = "900123456-7"
NIT_CLIENTE = "860034313"
COMPANY_ID = "c-001"


def crear_factura(**cambios) -> Factura:
    datos = dict(
        id="f-001",
        company_id=COMPANY_ID,
        subtotal=1057038.17,
        total_tax=77107.89,
        total_amount=1134146.06,
        supplier_name="Servicios Integrales S.A.S.",
        supplier_tax_id=NIT_PROVEEDOR,
        issue_date=date(2025, 3, 14),
        invoice_number="FE-1001",
    )
    datos.update(cambios)
    return Factura(**datos)


def crear_entidad(nit: str, juridica: bool = True, **cambios) -> EntidadTributaria:
    datos = dict(
        nit=nit,
        nombre="Entidad de prueba",
        tipo_entidad=TipoEntidad.PERSONA_JURIDICA if juridica else TipoEntidad.PERSONA_NATURAL,
        tipo_regimen=TipoRegimen.COMUN if juridica else TipoRegimen.SIMPLIFICADO,
        es_agente_retencion=juridica,
        es_sujeto_ica=juridica,
        es_declarante=juridica,
        estado_verificacion=EstadoVerificacion.AUTOMATICA,
        confianza_verificacion=0.9,
    )
    datos.update(cambios)
    return EntidadTributaria(**datos)


def crear_contexto(**cambios) -> ContextoTributarioFactura:
    datos = dict(
        subtotal=Decimal("1057038.17"),
        total_iva=Decimal("77107.89"),
        valor_total=Decimal("1134146.06"),
        tipo_servicio=TipoServicio.SERVICIOS,
        proveedor=crear_entidad("900123456"),
        cliente=crear_entidad(NIT_CLIENTE),
        fecha_emision=date(2025, 3, 14),
        municipio="Bogotá",
    )
    datos.update(cambios)
    return ContextoTributarioFactura(**datos)


@pytest.fixture
def factura():
    return crear_factura()


@pytest.fixture
def contexto():
    return crear_contexto()


@pytest.fixture
def repositorio(factura):
    repo = MemoriaDatabase()
    repo.agregar_factura(factura)
    repo.agregar_empresa(COMPANY_ID, NIT_CLIENTE, "Empresa Receptora S.A.")
    return repo
