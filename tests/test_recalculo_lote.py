"""
Pruebas del recalculo por lote: errores aislados, deduplicacion, timeout y concurrencia.
"""

import threading
import time

import pytest

from app.recalculo_lote import CoordinadorRecalculoLote, recalcular_facturas_lote
from database.database_service import IRetencionesService, crear_retenciones_service
from modelos import EstadoProcesamiento, ResultadoProcesamientoFactura
from conftest import COMPANY_ID, crear_factura


class ServicioLento(IRetencionesService):
    """Servicio simulado que registra cuantas facturas procesa a la vez"""

    def __init__(self, demora: float = 0.05):
        self.demora = demora
        self.activos = 0
        self.maximo_activos = 0
        self._lock = threading.Lock()

    def recalcular_factura(self, invoice_id, company_id, nit_cliente=None, municipio=None):
        with self._lock:
            self.activos += 1
            self.maximo_activos = max(self.maximo_activos, self.activos)
        try:
            time.sleep(self.demora)
        finally:
            with self._lock:
                self.activos -= 1
        return ResultadoProcesamientoFactura(
            invoice_id=invoice_id,
            estado=EstadoProcesamiento.SIN_RETENCIONES,
        )

    def obtener_detalles_retencion(self, invoice_id):
        return []


@pytest.fixture
def servicio(repositorio):
    repositorio.agregar_factura(crear_factura(id="f-002", subtotal=80000, total_tax=10000, total_amount=90000))
    return crear_retenciones_service(repositorio)


async def test_lote_con_fallo_parcial(servicio):
    lote = await recalcular_facturas_lote(servicio, ["f-001", "f-404", "f-002"], COMPANY_ID)

    assert lote.total_facturas == 3
    assert lote.con_retenciones == 1
    assert lote.sin_retenciones == 1
    assert lote.fallidas == 1

    por_id = {r.invoice_id: r for r in lote.resultados}
    assert por_id["f-001"].total_retencion == 138050
    assert por_id["f-002"].estado == EstadoProcesamiento.SIN_RETENCIONES
    assert por_id["f-404"].estado == EstadoProcesamiento.ERROR
    assert "f-404" in por_id["f-404"].error


async def test_ids_repetidos_se_procesan_una_vez(servicio):
    lote = await recalcular_facturas_lote(servicio, ["f-001", "f-002", "f-001"], COMPANY_ID)

    assert [r.invoice_id for r in lote.resultados] == ["f-001", "f-002"]
    assert len(servicio.obtener_detalles_retencion("f-001")) == 3


async def test_lote_vacio():
    lote = await recalcular_facturas_lote(ServicioLento(), [], COMPANY_ID)
    assert lote.total_facturas == 0
    assert lote.resultados == []


async def test_timeout_por_factura():
    lote = await recalcular_facturas_lote(
        ServicioLento(demora=0.5), ["f-001"], COMPANY_ID, timeout_segundos=0.05
    )

    [resultado] = lote.resultados
    assert resultado.estado == EstadoProcesamiento.ERROR
    assert "Timeout" in resultado.error


async def test_limite_de_concurrencia():
    servicio = ServicioLento()
    coordinador = CoordinadorRecalculoLote(servicio, max_workers=2)

    lote = await coordinador.recalcular_lote([f"f-{i}" for i in range(6)], COMPANY_ID)

    assert lote.sin_retenciones == 6
    assert servicio.maximo_activos <= 2


def test_max_workers_minimo_uno():
    assert CoordinadorRecalculoLote(ServicioLento(), max_workers=0).max_workers == 1
