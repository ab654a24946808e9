"""
Pruebas de los endpoints FastAPI con el repositorio en memoria.
"""

import asyncio
import time

import httpx
import pytest
from fastapi.testclient import TestClient

import main
from Clasificador import ValidadorEntidades
from database.database_service import crear_retenciones_service
from Liquidador.procesador_retenciones import ProcesadorRetenciones
from conftest import COMPANY_ID, NIT_CLIENTE


@pytest.fixture
def servicio(repositorio):
    return crear_retenciones_service(repositorio)


@pytest.fixture
def client(servicio, repositorio):
    main.app.dependency_overrides[main.obtener_servicio] = lambda: servicio
    main.app.dependency_overrides[main.obtener_procesador] = lambda: ProcesadorRetenciones()
    main.app.dependency_overrides[main.obtener_validador] = lambda: ValidadorEntidades(repositorio)
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def test_calcular_sin_persistir(client, factura, repositorio):
    respuesta = client.post("/api/retenciones/calcular", json={
        "factura": factura.model_dump(mode="json"),
        "nit_cliente": NIT_CLIENTE,
    })

    assert respuesta.status_code == 200
    cuerpo = respuesta.json()
    assert cuerpo["invoice_id"] == "f-001"
    assert cuerpo["desglose"]["total_retenciones"] == 138050
    assert cuerpo["desglose"]["resumen"]["valor_neto"] == pytest.approx(996096.06)
    assert repositorio.obtener_detalles_retencion("f-001") == []


def test_calcular_con_factura_invalida_responde_error_validacion(client, factura):
    datos = factura.model_dump(mode="json")
    datos["subtotal"] = -10

    respuesta = client.post("/api/retenciones/calcular", json={"factura": datos})

    assert respuesta.status_code == 200
    cuerpo = respuesta.json()
    assert cuerpo["estado"] == "error_validacion"
    assert cuerpo["errores"][0]["campo"] == "body.factura.subtotal"
    assert cuerpo["desglose"]["total_retenciones"] == 0.0


def test_recalcular_y_consultar(client):
    respuesta = client.post("/api/retenciones/recalcular", json={
        "invoice_id": "f-001", "company_id": COMPANY_ID,
    })
    assert respuesta.status_code == 200
    assert respuesta.json()["estado"] == "retenciones_calculadas"
    assert respuesta.json()["total_retencion"] == 138050

    consulta = client.get("/api/retenciones/f-001")
    assert consulta.status_code == 200
    cuerpo = consulta.json()
    assert [r["tipo_impuesto"] for r in cuerpo["retenciones"]] == [
        "RETENCION_FUENTE", "RETENCION_ICA", "RETENCION_IVA"
    ]
    assert cuerpo["total_retencion"] == 138050


def test_recalcular_factura_inexistente(client):
    respuesta = client.post("/api/retenciones/recalcular", json={
        "invoice_id": "f-404", "company_id": COMPANY_ID,
    })
    assert respuesta.status_code == 404
    assert respuesta.json()["error"] == "FacturaNoEncontradaError"
    assert respuesta.json()["invoice_id"] == "f-404"


def test_recalcular_lote(client):
    respuesta = client.post("/api/retenciones/recalcular-lote", json={
        "company_id": COMPANY_ID, "invoice_ids": ["f-001", "f-404"],
    })
    assert respuesta.status_code == 200
    cuerpo = respuesta.json()
    assert cuerpo["total_facturas"] == 2
    assert cuerpo["con_retenciones"] == 1
    assert cuerpo["fallidas"] == 1


def test_recalcular_lote_sin_ids_toma_facturas_de_la_empresa(client):
    respuesta = client.post("/api/retenciones/recalcular-lote", json={"company_id": COMPANY_ID})
    assert respuesta.status_code == 200
    assert [r["invoice_id"] for r in respuesta.json()["resultados"]] == ["f-001"]


def test_modo_degradado(monkeypatch, factura):
    monkeypatch.setattr(main, "servicio_global", None)
    client = TestClient(main.app)

    respuesta = client.post("/api/retenciones/recalcular", json={
        "invoice_id": "f-001", "company_id": COMPANY_ID,
    })
    assert respuesta.status_code == 503

    calculo = client.post("/api/retenciones/calcular", json={
        "factura": factura.model_dump(mode="json"), "nit_cliente": NIT_CLIENTE,
    })
    assert calculo.status_code == 200
    assert client.get("/health").json()["status"] == "DEGRADADO"


def test_validar_entidad(client):
    respuesta = client.post("/api/entidades/validar", json={"nit": "900123456-7", "nombre": "ACME S.A.S."})
    cuerpo = respuesta.json()
    assert cuerpo["clasificacion"] == "inferida"
    assert cuerpo["estado_verificacion"] == "automatic"
    assert cuerpo["entidad"]["tipo_entidad"] == "legal_person"


def test_tarifas_por_vigencia(client):
    exacta = client.get("/api/tarifas/2025").json()
    assert exacta["vigencia_exacta"]
    assert exacta["tabla"]["valor_uvt"] == 49799
    assert exacta["tabla"]["ica"]["Bogotá"]["tarifa"] == pytest.approx(0.00966)

    futura = client.get("/api/tarifas/2031").json()
    assert not futura["vigencia_exacta"]
    assert futura["tabla"]["anio"] == 2026


def test_health(client):
    cuerpo = client.get("/health").json()
    assert cuerpo["version"] == "3.0.0"
    assert 2025 in cuerpo["vigencias_configuradas"]


async def test_recalculo_lento_no_bloquea_otras_peticiones(servicio, repositorio, monkeypatch):
    obtener_factura = repositorio.obtener_factura

    def obtener_factura_lenta(*args, **kwargs):
        time.sleep(0.6)
        return obtener_factura(*args, **kwargs)

    monkeypatch.setattr(repositorio, "obtener_factura", obtener_factura_lenta)
    main.app.dependency_overrides[main.obtener_servicio] = lambda: servicio

    try:
        transporte = httpx.ASGITransport(app=main.app)
        async with httpx.AsyncClient(transport=transporte, base_url="http://preliquidador") as cliente:
            recalculo = asyncio.create_task(cliente.post("/api/retenciones/recalcular", json={
                "invoice_id": "f-001", "company_id": COMPANY_ID,
            }))
            await asyncio.sleep(0.1)

            inicio = time.perf_counter()
            salud = await cliente.get("/health")
            latencia = time.perf_counter() - inicio

            respuesta = await recalculo
    finally:
        main.app.dependency_overrides.clear()

    assert salud.status_code == 200
    assert latencia < 0.3
    assert respuesta.status_code == 200
    assert respuesta.json()["total_retencion"] == 138050
