"""
PRELIQUIDADOR DE RETENCIONES - FACTURA ELECTRONICA COLOMBIA
===========================================================

API para calcular y persistir las retenciones (ReteFuente, ReteICA y
ReteIVA) de facturas electronicas ya extraidas del XML/UBL.

ARQUITECTURA MODULAR:
- Clasificador/: Tipo de servicio, municipio y validacion de entidades (NIT)
- Liquidador/: Motor de reglas tributarias y procesador de retenciones
- database/: Repositorio de entidades, facturas y retenciones (Supabase)
- app/: Recalculo por lote
- utils/: Respuestas de error y exception handlers

FUNCIONALIDAD:
- Calculo sin persistencia de una factura enviada en el request
- Recalculo idempotente de facturas persistidas (una o por lote)
- Consulta de retenciones persistidas, tablas de tarifas y validacion de NIT

Autor: Sistema Preliquidador
Version: 3.0
"""

import asyncio
import os
import uvicorn
from datetime import datetime
from typing import List, Optional

# FastAPI y dependencias web
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

import logging

from dotenv import load_dotenv

from app_logging import configurar_logging
from config import DatabaseConfig, inicializar_configuracion, obtener_tabla_tarifas, TABLAS_TARIFAS
from modelos import Factura
from Clasificador import ValidadorEntidades
from Liquidador.motor_tributario import MotorReglasTributarias
from Liquidador.procesador_retenciones import ProcesadorRetenciones
from database import inicializar_servicio_retenciones
from utils.error_handlers import registrar_exception_handler
from app.recalculo_lote import recalcular_facturas_lote

# ===============================
# CONFIGURACION INICIAL
# ===============================

load_dotenv()
configurar_logging()
logger = logging.getLogger(__name__)

inicializar_configuracion()

repositorio_global, servicio_global = inicializar_servicio_retenciones()

# ===============================
# API FASTAPI
# ===============================

app = FastAPI(
    title="Preliquidador de Retenciones - Colombia",
    description="Calculo de ReteFuente, ReteICA y ReteIVA sobre facturas electronicas",
    version="3.0.0"
)

registrar_exception_handler(app)


# ===============================
# MODELOS DE REQUEST
# ===============================

class SolicitudCalculo(BaseModel):
    factura: Factura
    nit_proveedor: Optional[str] = None
    nit_cliente: Optional[str] = None
    nombre_cliente: Optional[str] = None
    municipio: Optional[str] = None


class SolicitudRecalculo(BaseModel):
    invoice_id: str
    company_id: str
    nit_cliente: Optional[str] = None
    municipio: Optional[str] = None


class SolicitudRecalculoLote(BaseModel):
    """Si no se envian invoice_ids se toman las ultimas `limite` facturas de la empresa"""
    company_id: str
    invoice_ids: Optional[List[str]] = None
    limite: int = Field(default=10, ge=1, le=500)
    nit_cliente: Optional[str] = None
    municipio: Optional[str] = None


class SolicitudValidacionEntidad(BaseModel):
    nit: Optional[str] = None
    nombre: Optional[str] = None


# ===============================
# DEPENDENCIAS
# ===============================

def obtener_servicio():
    """Servicio de retenciones persistidas; 503 si la API esta en modo degradado"""
    if servicio_global is None:
        raise HTTPException(
            status_code=503,
            detail="Base de datos no disponible: solo se permite el calculo sin persistencia"
        )
    return servicio_global


def obtener_procesador() -> ProcesadorRetenciones:
    # Con repositorio disponible las entidades validadas quedan cacheadas
    if servicio_global is not None:
        return servicio_global.procesador
    return ProcesadorRetenciones(validador=ValidadorEntidades(), motor=MotorReglasTributarias())


def obtener_validador() -> ValidadorEntidades:
    return ValidadorEntidades(repositorio_global)


# ===============================
# ENDPOINTS DE RETENCIONES
# ===============================

@app.post("/api/retenciones/calcular")
async def calcular_retenciones(solicitud: SolicitudCalculo,
                               procesador: ProcesadorRetenciones = Depends(obtener_procesador)):
    """Calcula el desglose de retenciones de una factura sin persistirlo"""
    # El validador consulta el repositorio: fuera del event loop
    desglose = await asyncio.to_thread(
        procesador.procesar_retenciones_factura,
        solicitud.factura,
        nit_proveedor=solicitud.nit_proveedor,
        nit_cliente=solicitud.nit_cliente,
        municipio=solicitud.municipio,
        nombre_cliente=solicitud.nombre_cliente,
    )
    return {
        "invoice_id": solicitud.factura.id,
        "desglose": desglose.model_dump(mode="json"),
        "timestamp": datetime.now().isoformat(),
    }


@app.post("/api/retenciones/recalcular")
async def recalcular_retenciones(solicitud: SolicitudRecalculo, servicio=Depends(obtener_servicio)):
    """Recalcula y reemplaza las retenciones persistidas de una factura"""
    resultado = await asyncio.to_thread(
        servicio.recalcular_factura,
        solicitud.invoice_id,
        solicitud.company_id,
        nit_cliente=solicitud.nit_cliente,
        municipio=solicitud.municipio,
    )
    return resultado.model_dump(mode="json")


@app.post("/api/retenciones/recalcular-lote")
async def recalcular_retenciones_lote(solicitud: SolicitudRecalculoLote, servicio=Depends(obtener_servicio)):
    """
    Recalcula varias facturas en paralelo.

    Un fallo en una factura queda registrado en su resultado y no detiene
    el lote.
    """
    invoice_ids = solicitud.invoice_ids
    if not invoice_ids:
        facturas = await asyncio.to_thread(
            servicio.repositorio.listar_facturas, solicitud.company_id, solicitud.limite
        )
        invoice_ids = [factura.id for factura in facturas]
        logger.info(f" Lote sin ids: {len(invoice_ids)} facturas de la empresa {solicitud.company_id}")

    lote = await recalcular_facturas_lote(
        servicio,
        invoice_ids,
        solicitud.company_id,
        max_workers=DatabaseConfig.get_lote_max_concurrencia(),
        timeout_segundos=DatabaseConfig.get_lote_timeout(),
        nit_cliente=solicitud.nit_cliente,
        municipio=solicitud.municipio,
    )
    return lote.model_dump(mode="json")


@app.get("/api/retenciones/{invoice_id}")
async def obtener_retenciones(invoice_id: str, servicio=Depends(obtener_servicio)):
    """Lineas de retencion persistidas de una factura"""
    detalles = await asyncio.to_thread(servicio.obtener_detalles_retencion, invoice_id)
    return {
        "invoice_id": invoice_id,
        "retenciones": [detalle.model_dump(mode="json") for detalle in detalles],
        "total_retencion": sum(detalle.valor_retencion for detalle in detalles),
    }


# ===============================
# ENDPOINTS ADICIONALES
# ===============================

@app.post("/api/entidades/validar")
async def validar_entidad(solicitud: SolicitudValidacionEntidad,
                          validador: ValidadorEntidades = Depends(obtener_validador)):
    """Clasifica un proveedor o cliente a partir de su NIT y razon social"""
    resultado = await asyncio.to_thread(validador.validar_entidad, solicitud.nit, solicitud.nombre)
    respuesta = resultado.model_dump(mode="json")
    respuesta["estado_verificacion"] = resultado.estado_verificacion.value
    return respuesta


@app.get("/api/tarifas/{anio}")
async def obtener_tarifas(anio: int):
    """Tabla de tarifas aplicable a la vigencia (con la misma seleccion que el motor)"""
    tabla = obtener_tabla_tarifas(anio)
    return {
        "anio_solicitado": anio,
        "vigencia_exacta": tabla.anio == anio,
        "tabla": tabla.a_diccionario(),
    }


@app.get("/health")
async def health_check():
    """Verificar estado del sistema y modulos"""
    return {
        "status": "OK" if servicio_global is not None else "DEGRADADO",
        "timestamp": datetime.now().isoformat(),
        "version": "3.0.0",
        "database": {
            "tipo": DatabaseConfig.get_database_type(),
            "disponible": servicio_global is not None,
        },
        "vigencias_configuradas": sorted(TABLAS_TARIFAS),
    }


if __name__ == "__main__":
    logger.info("🚀 Iniciando Preliquidador de Retenciones v3.0")
    port = int(os.environ.get("PORT", 8080))
    reload_mode = os.environ.get("RELOAD", "false").lower() == "true"

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=reload_mode,
        timeout_keep_alive=120,
        limit_concurrency=100
    )
