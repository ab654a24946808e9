from supabase import create_client, Client
import threading
from datetime import date, datetime, timezone
from typing import Optional, Dict, Any, List, Sequence
from abc import ABC, abstractmethod
import logging

from pydantic import ValidationError

from modelos import (
    DetalleRetencion,
    EntidadTributaria,
    EstadoVerificacion,
    Factura,
    MetodoCalculo,
    ReglaOverride,
    TipoEntidad,
    TipoRegimen,
    TipoRetencion,
)
from Liquidador.exceptions import FacturaNoEncontradaError, PersistenciaRetencionesError

logger = logging.getLogger(__name__)

TIPOS_RETENCION = [tipo.value for tipo in TipoRetencion]

# ================================
# 🏗️ INTERFACES Y ABSTRACCIONES
# ================================

class RepositorioRetenciones(ABC):
    """Interface abstracta para la persistencia de entidades, facturas y retenciones"""

    @abstractmethod
    def obtener_entidad(self, nit: str) -> Optional[EntidadTributaria]:
        """Obtiene una entidad tributaria por NIT"""
        pass

    @abstractmethod
    def guardar_entidad(self, entidad: EntidadTributaria) -> None:
        """Crea o actualiza una entidad tributaria (upsert por NIT)"""
        pass

    @abstractmethod
    def obtener_factura(self, invoice_id: str, company_id: Optional[str] = None) -> Optional[Factura]:
        """Obtiene una factura no eliminada"""
        pass

    @abstractmethod
    def listar_facturas(self, company_id: str, limite: int = 10) -> List[Factura]:
        """Lista las facturas mas recientes de una empresa"""
        pass

    @abstractmethod
    def obtener_empresa(self, company_id: str) -> Optional[Dict[str, str]]:
        """Obtiene NIT y razon social de la empresa receptora ({'nit', 'nombre'})"""
        pass

    @abstractmethod
    def reemplazar_retenciones_factura(self, invoice_id: str, company_id: str,
                                       detalles: Sequence[DetalleRetencion],
                                       total_retencion: float) -> int:
        """
        Reemplaza atomicamente las retenciones de una factura.

        Borra las lineas de retencion existentes, inserta las nuevas y
        actualiza invoices.total_retention en una sola transaccion. Si algo
        falla las lineas anteriores se conservan.

        Returns:
            int: Numero de lineas insertadas

        Raises:
            PersistenciaRetencionesError: Si la transaccion falla
        """
        pass

    @abstractmethod
    def obtener_detalles_retencion(self, invoice_id: str) -> List[DetalleRetencion]:
        """Obtiene las lineas de retencion persistidas de una factura"""
        pass

    @abstractmethod
    def obtener_reglas_override(self, company_id: str, fecha: date) -> List[ReglaOverride]:
        """Obtiene las reglas override activas y vigentes de una empresa"""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Verifica la salud de la conexión"""
        pass


# ================================
# MAPEO FILAS <-> MODELOS
# ================================

_ALIAS_TIPO_RETENCION = {
    "retefuente": TipoRetencion.RETENCION_FUENTE,
    "reteica": TipoRetencion.RETENCION_ICA,
    "reteiva": TipoRetencion.RETENCION_IVA,
}


def _tipo_retencion_desde_texto(valor: str) -> TipoRetencion:
    try:
        return TipoRetencion(valor)
    except ValueError:
        if valor.lower() in _ALIAS_TIPO_RETENCION:
            return _ALIAS_TIPO_RETENCION[valor.lower()]
        raise


def entidad_desde_fila(fila: Dict[str, Any]) -> EntidadTributaria:
    """Convierte una fila de tax_entities en EntidadTributaria"""
    es_juridica = fila.get('entity_type') in ('legal_person', 'company')
    try:
        regimen = TipoRegimen(fila.get('regime_type'))
    except ValueError:
        regimen = TipoRegimen.COMUN if es_juridica else TipoRegimen.SIMPLIFICADO
    try:
        estado = EstadoVerificacion(fila.get('verification_status'))
    except ValueError:
        estado = EstadoVerificacion.PENDIENTE

    confianza = fila.get('verification_confidence')
    confianza = 0.5 if confianza is None else min(max(float(confianza), 0.0), 1.0)

    return EntidadTributaria(
        nit=fila.get('tax_id') or "",
        nombre=fila.get('name') or "",
        tipo_entidad=TipoEntidad.PERSONA_JURIDICA if es_juridica else TipoEntidad.PERSONA_NATURAL,
        tipo_regimen=regimen,
        es_agente_retencion=bool(fila.get('is_retention_agent')),
        es_sujeto_ica=bool(fila.get('is_ica_subject')),
        es_declarante=bool(fila.get('is_declarant')),
        municipios=set(fila.get('municipalities') or []),
        estado_verificacion=estado,
        confianza_verificacion=confianza,
    )


def fila_desde_entidad(entidad: EntidadTributaria) -> Dict[str, Any]:
    return {
        'tax_id': entidad.nit,
        'name': entidad.nombre,
        'entity_type': entidad.tipo_entidad.value,
        'regime_type': entidad.tipo_regimen.value,
        'is_retention_agent': entidad.es_agente_retencion,
        'is_ica_subject': entidad.es_sujeto_ica,
        'is_declarant': entidad.es_declarante,
        'municipalities': sorted(entidad.municipios),
        'verification_status': entidad.estado_verificacion.value,
        'verification_confidence': entidad.confianza_verificacion,
        'last_verified_at': datetime.now(timezone.utc).isoformat(),
        'data_source': 'heuristic' if entidad.estado_verificacion != EstadoVerificacion.VERIFICADA else 'manual',
    }


def fila_desde_detalle(detalle: DetalleRetencion) -> Dict[str, Any]:
    """Convierte un DetalleRetencion al formato de invoice_taxes"""
    return {
        'tax_type': detalle.tipo_impuesto.value,
        'tax_category': 'retention',
        'concept_code': detalle.codigo_concepto,
        'concept_description': detalle.descripcion_concepto,
        'taxable_base': detalle.base_gravable,
        'tax_rate': detalle.tarifa,
        'tax_amount': detalle.valor_retencion,
        'threshold_uvt': detalle.umbral_uvt,
        'municipality': detalle.municipio,
        'supplier_type': detalle.tipo_proveedor,
        'calculation_method': detalle.metodo_calculo.value,
        'applied_rule': detalle.regla_aplicada,
        'confidence': detalle.confianza,
        'dian_code': detalle.codigo_dian,
        'municipal_code': detalle.codigo_municipal,
    }


def detalle_desde_fila(fila: Dict[str, Any]) -> DetalleRetencion:
    try:
        metodo = MetodoCalculo(fila.get('calculation_method'))
    except ValueError:
        metodo = MetodoCalculo.AUTOMATICO
    return DetalleRetencion(
        tipo_impuesto=_tipo_retencion_desde_texto(fila['tax_type']),
        codigo_concepto=fila.get('concept_code') or "",
        descripcion_concepto=fila.get('concept_description') or "",
        base_gravable=float(fila.get('taxable_base') or 0),
        tarifa=float(fila.get('tax_rate') or 0),
        valor_retencion=float(fila.get('tax_amount') or 0),
        umbral_uvt=fila.get('threshold_uvt'),
        municipio=fila.get('municipality'),
        tipo_proveedor=fila.get('supplier_type') or "",
        metodo_calculo=metodo,
        regla_aplicada=fila.get('applied_rule') or "",
        confianza=float(fila.get('confidence') or 0),
        codigo_dian=fila.get('dian_code'),
        codigo_municipal=fila.get('municipal_code'),
    )


def regla_override_desde_fila(fila: Dict[str, Any]) -> ReglaOverride:
    return ReglaOverride(
        id=str(fila['id']) if fila.get('id') is not None else None,
        company_id=str(fila['company_id']),
        nombre_regla=fila.get('rule_name') or "",
        tipo_retencion=_tipo_retencion_desde_texto(fila['retention_type']),
        codigo_concepto=fila.get('concept_code'),
        tarifa_override=fila.get('override_rate'),
        umbral_uvt_override=fila.get('override_threshold_uvt'),
        tipos_proveedor=fila.get('supplier_types') or [],
        tipos_servicio=fila.get('service_types') or [],
        municipios=fila.get('municipalities') or [],
        vigente_desde=fila['effective_from'],
        vigente_hasta=fila.get('effective_to'),
        activa=fila.get('is_active', True),
    )


# ================================
#  IMPLEMENTACIÓN SUPABASE
# ================================

class SupabaseDatabase(RepositorioRetenciones):
    """
    Implementación concreta para Supabase.

    El reemplazo atomico de retenciones se delega a la funcion SQL
    reemplazar_retenciones_factura (database/migraciones), que toma un
    advisory lock por factura y hace delete + insert + update en una
    sola transaccion.
    """

    FUNCION_REEMPLAZO = 'reemplazar_retenciones_factura'

    def __init__(self, supabase_url: str, supabase_key: str, cliente: Optional[Client] = None):
        self.supabase: Client = cliente if cliente is not None else create_client(supabase_url, supabase_key)
        self.tabla_entidades = 'tax_entities'
        self.tabla_facturas = 'invoices'
        self.tabla_retenciones = 'invoice_taxes'
        self.tabla_empresas = 'companies'
        self.tabla_overrides = 'retention_rules_override'

    def obtener_entidad(self, nit: str) -> Optional[EntidadTributaria]:
        try:
            response = self.supabase.table(self.tabla_entidades).select('*').eq(
                'tax_id', nit
            ).limit(1).execute()
        except Exception as e:
            raise PersistenciaRetencionesError(f"Error consultando entidad {nit}: {e}") from e

        if response.data:
            return entidad_desde_fila(response.data[0])
        return None

    def guardar_entidad(self, entidad: EntidadTributaria) -> None:
        try:
            self.supabase.table(self.tabla_entidades).upsert(
                fila_desde_entidad(entidad), on_conflict='tax_id'
            ).execute()
        except Exception as e:
            raise PersistenciaRetencionesError(f"Error guardando entidad {entidad.nit}: {e}") from e

    def obtener_factura(self, invoice_id: str, company_id: Optional[str] = None) -> Optional[Factura]:
        try:
            consulta = self.supabase.table(self.tabla_facturas).select('*').eq('id', invoice_id)
            if company_id:
                consulta = consulta.eq('company_id', company_id)
            response = consulta.is_('deleted_at', 'null').limit(1).execute()
        except Exception as e:
            raise PersistenciaRetencionesError(f"Error consultando factura {invoice_id}: {e}") from e

        if response.data:
            return Factura.model_validate(response.data[0])
        return None

    def listar_facturas(self, company_id: str, limite: int = 10) -> List[Factura]:
        try:
            response = self.supabase.table(self.tabla_facturas).select('*').eq(
                'company_id', company_id
            ).is_('deleted_at', 'null').order('issue_date', desc=True).limit(limite).execute()
        except Exception as e:
            raise PersistenciaRetencionesError(f"Error listando facturas de {company_id}: {e}") from e

        return [Factura.model_validate(fila) for fila in response.data or []]

    def obtener_empresa(self, company_id: str) -> Optional[Dict[str, str]]:
        try:
            response = self.supabase.table(self.tabla_empresas).select(
                'tax_id, legal_name'
            ).eq('id', company_id).limit(1).execute()
        except Exception as e:
            raise PersistenciaRetencionesError(f"Error consultando empresa {company_id}: {e}") from e

        if response.data:
            fila = response.data[0]
            return {'nit': fila.get('tax_id') or "", 'nombre': fila.get('legal_name') or ""}
        return None

    def reemplazar_retenciones_factura(self, invoice_id: str, company_id: str,
                                       detalles: Sequence[DetalleRetencion],
                                       total_retencion: float) -> int:
        parametros = {
            'p_invoice_id': invoice_id,
            'p_company_id': company_id,
            'p_retenciones': [fila_desde_detalle(d) for d in detalles],
            'p_total_retencion': total_retencion,
        }
        try:
            response = self.supabase.rpc(self.FUNCION_REEMPLAZO, parametros).execute()
        except Exception as e:
            logger.error(f" Error reemplazando retenciones de la factura {invoice_id}: {e}")
            raise PersistenciaRetencionesError(
                f"No se pudieron guardar las retenciones de la factura {invoice_id}: {e}"
            ) from e

        insertadas = response.data if isinstance(response.data, int) else len(detalles)
        logger.info(f" Retenciones de la factura {invoice_id} reemplazadas ({insertadas} lineas)")
        return insertadas

    def obtener_detalles_retencion(self, invoice_id: str) -> List[DetalleRetencion]:
        try:
            response = self.supabase.table(self.tabla_retenciones).select('*').eq(
                'invoice_id', invoice_id
            ).in_('tax_type', TIPOS_RETENCION).execute()
        except Exception as e:
            raise PersistenciaRetencionesError(f"Error consultando retenciones de {invoice_id}: {e}") from e

        return [detalle_desde_fila(fila) for fila in response.data or []]

    def obtener_reglas_override(self, company_id: str, fecha: date) -> List[ReglaOverride]:
        try:
            response = self.supabase.table(self.tabla_overrides).select('*').eq(
                'company_id', company_id
            ).eq('is_active', True).lte('effective_from', fecha.isoformat()).execute()
        except Exception as e:
            raise PersistenciaRetencionesError(f"Error consultando overrides de {company_id}: {e}") from e

        reglas = []
        for fila in response.data or []:
            try:
                regla = regla_override_desde_fila(fila)
            except (ValidationError, ValueError, KeyError, TypeError) as e:
                logger.warning(f" Regla override {fila.get('id')} de {company_id} invalida, se omite: {e}")
                continue
            if regla.vigente_hasta is None or regla.vigente_hasta >= fecha:
                reglas.append(regla)
        return reglas

    def health_check(self) -> bool:
        """
        Verifica si la conexión a Supabase funciona
        """
        try:
            self.supabase.table(self.tabla_entidades).select('tax_id').limit(1).execute()
            return True
        except Exception as e:
            logger.error(f" Health check fallido: {e}")
            return False


# ================================
# IMPLEMENTACION EN MEMORIA
# ================================

class MemoriaDatabase(RepositorioRetenciones):
    """
    Implementacion en memoria para desarrollo y pruebas.

    Mantiene las mismas garantias que Supabase: un lock serializa las
    escrituras y el reemplazo de retenciones restaura el estado anterior
    si la insercion falla.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.entidades: Dict[str, EntidadTributaria] = {}
        self.facturas: Dict[str, Factura] = {}
        self.empresas: Dict[str, Dict[str, str]] = {}
        self.retenciones: Dict[str, Dict[TipoRetencion, DetalleRetencion]] = {}
        self.reglas_override: List[ReglaOverride] = []

    # Carga de datos

    def agregar_factura(self, factura: Factura) -> None:
        with self._lock:
            self.facturas[factura.id] = factura

    def agregar_empresa(self, company_id: str, nit: str, nombre: str = "") -> None:
        with self._lock:
            self.empresas[company_id] = {'nit': nit, 'nombre': nombre}

    def agregar_regla_override(self, regla: ReglaOverride) -> None:
        with self._lock:
            self.reglas_override.append(regla)

    # Interface

    def obtener_entidad(self, nit: str) -> Optional[EntidadTributaria]:
        with self._lock:
            entidad = self.entidades.get(nit)
            return entidad.model_copy(deep=True) if entidad else None

    def guardar_entidad(self, entidad: EntidadTributaria) -> None:
        with self._lock:
            self.entidades[entidad.nit] = entidad.model_copy(deep=True)

    def obtener_factura(self, invoice_id: str, company_id: Optional[str] = None) -> Optional[Factura]:
        with self._lock:
            factura = self.facturas.get(invoice_id)
            if factura is None or (company_id and factura.company_id != company_id):
                return None
            return factura

    def listar_facturas(self, company_id: str, limite: int = 10) -> List[Factura]:
        with self._lock:
            facturas = [f for f in self.facturas.values() if f.company_id == company_id]
        facturas.sort(key=lambda f: f.issue_date, reverse=True)
        return facturas[:limite]

    def obtener_empresa(self, company_id: str) -> Optional[Dict[str, str]]:
        with self._lock:
            empresa = self.empresas.get(company_id)
            return dict(empresa) if empresa else None

    def reemplazar_retenciones_factura(self, invoice_id: str, company_id: str,
                                       detalles: Sequence[DetalleRetencion],
                                       total_retencion: float) -> int:
        with self._lock:
            factura = self.obtener_factura(invoice_id, company_id)
            if factura is None:
                raise FacturaNoEncontradaError(invoice_id, company_id)

            anteriores = dict(self.retenciones.get(invoice_id, {}))
            try:
                self.retenciones[invoice_id] = {}
                self._insertar_retenciones(invoice_id, detalles)
                self.facturas[invoice_id] = factura.model_copy(update={'total_retention': total_retencion})
            except Exception as e:
                self.retenciones[invoice_id] = anteriores
                self.facturas[invoice_id] = factura
                logger.error(f" Reemplazo de retenciones revertido para la factura {invoice_id}: {e}")
                if isinstance(e, PersistenciaRetencionesError):
                    raise
                raise PersistenciaRetencionesError(
                    f"No se pudieron guardar las retenciones de la factura {invoice_id}: {e}"
                ) from e

            return len(detalles)

    def _insertar_retenciones(self, invoice_id: str, detalles: Sequence[DetalleRetencion]) -> None:
        """Inserta lineas respetando la llave (invoice_id, tax_type)"""
        lineas = self.retenciones[invoice_id]
        for detalle in detalles:
            if detalle.tipo_impuesto in lineas:
                raise PersistenciaRetencionesError(
                    f"Retencion duplicada {detalle.tipo_impuesto.value} para la factura {invoice_id}"
                )
            lineas[detalle.tipo_impuesto] = detalle.model_copy(deep=True)

    def obtener_detalles_retencion(self, invoice_id: str) -> List[DetalleRetencion]:
        with self._lock:
            lineas = self.retenciones.get(invoice_id, {})
            return [lineas[tipo] for tipo in TipoRetencion if tipo in lineas]

    def obtener_reglas_override(self, company_id: str, fecha: date) -> List[ReglaOverride]:
        with self._lock:
            return [
                r for r in self.reglas_override
                if r.company_id == company_id and r.activa and r.vigente_desde <= fecha
                and (r.vigente_hasta is None or r.vigente_hasta >= fecha)
            ]

    def health_check(self) -> bool:
        return True
