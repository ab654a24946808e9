"""
MODELOS DE DATOS - DOMAIN LAYER
================================

Modelos Pydantic para el preliquidador de retenciones sobre factura
electronica: entidades tributarias, contexto de calculo, resultados del
motor de reglas, detalle de retenciones y desglose agregado por factura.


ORGANIZACION:
1. Enumeraciones del dominio (9 enumeraciones)
2. Entidades tributarias y su validacion (2 modelos)
3. Factura y contexto de calculo (2 modelos)
4. Resultados del motor de reglas (2 modelos)
5. Detalle, desglose y reglas override (4 modelos)
6. Resultados de procesamiento individual y por lote (2 modelos)

Autor: Sistema Preliquidador
Version: 3.0 - Clean Architecture
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ===============================
# SECCION 1: ENUMERACIONES DEL DOMINIO
# ===============================


class TipoEntidad(str, Enum):
    """Naturaleza juridica del tercero"""
    PERSONA_NATURAL = "natural_person"
    PERSONA_JURIDICA = "legal_person"


class TipoRegimen(str, Enum):
    """Regimen tributario del tercero"""
    SIMPLIFICADO = "simplified"
    COMUN = "common"
    ESPECIAL = "special"


class EstadoVerificacion(str, Enum):
    """Estado de verificacion persistido junto a la entidad"""
    PENDIENTE = "pending"
    AUTOMATICA = "automatic"
    VERIFICADA = "verified"


class ClasificacionEntidad(str, Enum):
    """
    Resultado etiquetado de la validacion de una entidad.

    - verificada: existe en la base de datos con estado verified
    - inferida: clasificada por heuristica (formato del NIT y nombre)
    - desconocida: no hay NIT utilizable, se entrega un placeholder
    """
    VERIFICADA = "verificada"
    INFERIDA = "inferida"
    DESCONOCIDA = "desconocida"


class TipoServicio(str, Enum):
    """Clasificacion del bien o servicio facturado para ReteFuente"""
    SERVICIOS = "services"
    PROFESIONAL = "professional"
    CONSTRUCCION = "construction"
    COMPRAS = "goods"
    ARRENDAMIENTO = "rent"
    TRANSPORTE = "transport"


class Municipio(str, Enum):
    """Municipios con tarifa de ReteICA parametrizada"""
    BOGOTA = "Bogotá"
    MEDELLIN = "Medellín"
    CALI = "Cali"
    BUCARAMANGA = "Bucaramanga"
    BARRANQUILLA = "Barranquilla"
    CARTAGENA = "Cartagena"


class TipoRetencion(str, Enum):
    RETENCION_FUENTE = "RETENCION_FUENTE"
    RETENCION_ICA = "RETENCION_ICA"
    RETENCION_IVA = "RETENCION_IVA"


class MetodoCalculo(str, Enum):
    AUTOMATICO = "automatic"
    MANUAL = "manual"
    OVERRIDE = "override"


class EstadoProcesamiento(str, Enum):
    """
    Estado del procesamiento de retenciones de una factura.

    "sin_retenciones_aplicables" y "error" son resultados distintos:
    el primero significa que se calculo y ninguna retencion aplica,
    el segundo que el calculo o la persistencia fallaron.
    """
    CALCULADAS = "retenciones_calculadas"
    SIN_RETENCIONES = "sin_retenciones_aplicables"
    ERROR = "error"


# ===============================
# SECCION 2: ENTIDADES TRIBUTARIAS
# ===============================

class EntidadTributaria(BaseModel):
    """
    Tercero (proveedor o cliente) con sus caracteristicas tributarias.

    Se crea la primera vez que se referencia un NIT y se conserva como
    traza de auditoria (nunca se elimina).

    Attributes:
        nit: NIT o cedula sin digito de verificacion (solo digitos)
        nombre: Razon social o nombre del tercero
        tipo_entidad: Persona natural o juridica
        tipo_regimen: Regimen simplificado, comun o especial
        es_agente_retencion: True si la DIAN lo designa agente retenedor
        es_sujeto_ica: True si es sujeto pasivo de ICA
        es_declarante: True si es declarante de renta
        municipios: Municipios donde ejerce actividad
        estado_verificacion: pending, automatic o verified
        confianza_verificacion: Confianza de la clasificacion (0 a 1)

    Note:
        es_agente_retencion y es_sujeto_ica son independientes del
        tipo_entidad. Dependen de la designacion DIAN y solo se
        aproximan por heuristica cuando no se conocen.

    Example:
        >>> entidad = EntidadTributaria(
        ...     nit="900123456",
        ...     nombre="Servicios Integrales S.A.S.",
        ...     tipo_entidad=TipoEntidad.PERSONA_JURIDICA,
        ...     tipo_regimen=TipoRegimen.COMUN,
        ...     es_agente_retencion=True,
        ...     es_sujeto_ica=True,
        ...     es_declarante=True
        ... )
    """
    nit: str = ""
    nombre: str = ""
    tipo_entidad: TipoEntidad = TipoEntidad.PERSONA_NATURAL
    tipo_regimen: TipoRegimen = TipoRegimen.SIMPLIFICADO
    es_agente_retencion: bool = False
    es_sujeto_ica: bool = False
    es_declarante: bool = False
    municipios: Set[str] = Field(default_factory=set)
    estado_verificacion: EstadoVerificacion = EstadoVerificacion.PENDIENTE
    confianza_verificacion: float = Field(default=0.5, ge=0.0, le=1.0)


class ResultadoValidacionEntidad(BaseModel):
    """
    Resultado de ValidadorEntidades.validar_entidad.

    Attributes:
        entidad: Entidad resuelta o sintetizada
        clasificacion: verificada, inferida o desconocida
        confianza: Confianza de la clasificacion (0 a 1)
        notas_validacion: Observaciones para el revisor humano
        requiere_revision_manual: True si un humano debe confirmar la entidad
    """
    entidad: EntidadTributaria
    clasificacion: ClasificacionEntidad
    confianza: float = Field(ge=0.0, le=1.0)
    notas_validacion: List[str] = Field(default_factory=list)
    requiere_revision_manual: bool = False

    @property
    def estado_verificacion(self) -> EstadoVerificacion:
        return self.entidad.estado_verificacion


# ===============================
# SECCION 3: FACTURA Y CONTEXTO DE CALCULO
# ===============================

class Factura(BaseModel):
    """
    Registro de factura producido por la extraccion del XML/UBL.

    Solo lectura para este modulo, excepto total_retention que se
    actualiza al persistir las retenciones.

    Example:
        >>> factura = Factura(
        ...     id="f-001",
        ...     company_id="c-001",
        ...     subtotal=1057038.17,
        ...     total_tax=77107.89,
        ...     total_amount=1134146.06,
        ...     supplier_name="Servicios Integrales S.A.S.",
        ...     supplier_tax_id="900123456-7",
        ...     issue_date="2025-03-14"
        ... )
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    company_id: str
    subtotal: float = Field(ge=0.0)
    total_tax: float = Field(default=0.0, ge=0.0)
    total_amount: float = Field(ge=0.0)
    supplier_name: str = ""
    supplier_tax_id: Optional[str] = None
    issue_date: date
    puc_code: Optional[str] = None
    invoice_number: Optional[str] = None
    total_retention: Optional[float] = None

    @field_validator("issue_date", mode="before")
    @classmethod
    def _normalizar_fecha(cls, valor):
        # Supabase puede devolver timestamps completos
        if isinstance(valor, datetime):
            return valor.date()
        if isinstance(valor, str) and len(valor) > 10:
            return valor[:10]
        return valor

    @field_validator("supplier_name", mode="before")
    @classmethod
    def _nombre_vacio(cls, valor):
        return valor or ""

    @field_validator("total_tax", mode="before")
    @classmethod
    def _iva_nulo(cls, valor):
        return 0.0 if valor is None else valor


class ContextoTributarioFactura(BaseModel):
    """
    Contexto efimero de calculo para una factura.

    Se construye en cada llamada a procesar_retenciones_factura y no se
    persiste. Los valores monetarios se manejan como Decimal.
    """
    subtotal: Decimal
    total_iva: Decimal
    valor_total: Decimal
    tipo_servicio: TipoServicio
    proveedor: EntidadTributaria
    cliente: EntidadTributaria
    fecha_emision: date
    municipio: str


# ===============================
# SECCION 4: RESULTADOS DEL MOTOR DE REGLAS
# ===============================

class ResultadoCalculoImpuesto(BaseModel):
    """
    Resultado del motor para un tipo de retencion.

    regla_aplicada siempre se diligencia, incluso cuando no aplica,
    para trazabilidad de auditoria.
    """
    aplica: bool = False
    tarifa: float = 0.0
    valor: float = 0.0
    base_gravable: float = 0.0
    regla_aplicada: str
    base_uvt: Optional[float] = None
    concepto_dian: Optional[str] = None
    municipio: Optional[str] = None
    codigo_municipal: Optional[str] = None


class ResultadoMotorTributario(BaseModel):
    """Los tres resultados independientes de MotorReglasTributarias.calcular_impuestos"""
    retencion_fuente: ResultadoCalculoImpuesto
    ica: ResultadoCalculoImpuesto
    retencion_iva: ResultadoCalculoImpuesto
    anio_fiscal: int
    valor_uvt: float


# ===============================
# SECCION 5: DETALLE, DESGLOSE Y REGLAS OVERRIDE
# ===============================

class DetalleRetencion(BaseModel):
    """
    Linea de retencion persistida (tabla invoice_taxes).

    Una por tipo de retencion aplicable y por factura. Se reemplaza
    completa en cada recalculo.

    Example:
        >>> detalle = DetalleRetencion(
        ...     tipo_impuesto=TipoRetencion.RETENCION_FUENTE,
        ...     codigo_concepto="365",
        ...     descripcion_concepto="365 - Servicios en general",
        ...     base_gravable=1057038.17,
        ...     tarifa=0.11,
        ...     valor_retencion=116274.0,
        ...     tipo_proveedor="legal_person",
        ...     regla_aplicada="services_legal_person",
        ...     confianza=0.95,
        ...     codigo_dian="365"
        ... )
    """
    tipo_impuesto: TipoRetencion
    codigo_concepto: str
    descripcion_concepto: str
    base_gravable: float
    tarifa: float
    valor_retencion: float
    umbral_uvt: Optional[float] = None
    municipio: Optional[str] = None
    tipo_proveedor: str
    metodo_calculo: MetodoCalculo = MetodoCalculo.AUTOMATICO
    regla_aplicada: str
    confianza: float = Field(ge=0.0, le=1.0)
    codigo_dian: Optional[str] = None
    codigo_municipal: Optional[str] = None


class ResumenRetenciones(BaseModel):
    total_retefuente: float = 0.0
    total_reteica: float = 0.0
    total_reteiva: float = 0.0
    valor_neto: float = 0.0


class DesgloseRetenciones(BaseModel):
    """
    Desglose agregado de retenciones de una factura.

    Valor derivado, no se persiste como fila propia: sus detalles se
    aplanan en invoice_taxes y total_retenciones se escribe en
    invoices.total_retention.

    Attributes:
        retefuente: Detalles de Retencion en la Fuente (0 o 1)
        reteica: Detalles de Retencion de ICA (0 o 1)
        reteiva: Detalles de Retencion de IVA (0 o 1)
        total_retenciones: Suma de todos los detalles
        resumen: Totales por tipo y valor neto a pagar
        observaciones: Regla aplicada de cada tipo que no aplico
        requiere_revision_manual: True si alguna entidad quedo sin verificar
    """
    retefuente: List[DetalleRetencion] = Field(default_factory=list)
    reteica: List[DetalleRetencion] = Field(default_factory=list)
    reteiva: List[DetalleRetencion] = Field(default_factory=list)
    total_retenciones: float = 0.0
    resumen: ResumenRetenciones = Field(default_factory=ResumenRetenciones)
    observaciones: List[str] = Field(default_factory=list)
    requiere_revision_manual: bool = False

    def detalles(self) -> List[DetalleRetencion]:
        """Todos los detalles en orden RETEFUENTE, RETEICA, RETEIVA"""
        return [*self.retefuente, *self.reteica, *self.reteiva]

    @property
    def tiene_retenciones(self) -> bool:
        return bool(self.retefuente or self.reteica or self.reteiva)


class ReglaOverride(BaseModel):
    """
    Regla de excepcion parametrizada por empresa (retention_rules_override).

    Reemplaza la tarifa (y opcionalmente el umbral en UVT) de una
    retencion que el motor ya determino como aplicable. Listas vacias
    en tipos_proveedor, tipos_servicio o municipios significan "todos".
    """
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    company_id: str
    nombre_regla: str
    tipo_retencion: TipoRetencion
    codigo_concepto: Optional[str] = None
    tarifa_override: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    umbral_uvt_override: Optional[float] = Field(default=None, ge=0.0)
    tipos_proveedor: List[str] = Field(default_factory=list)
    tipos_servicio: List[str] = Field(default_factory=list)
    municipios: List[str] = Field(default_factory=list)
    vigente_desde: date
    vigente_hasta: Optional[date] = None
    activa: bool = True

    def aplica_a(self, tipo_retencion: TipoRetencion, tipo_servicio: TipoServicio,
                 tipo_proveedor: TipoEntidad, municipio: str, fecha: date) -> bool:
        """Determina si la regla cubre la retencion descrita"""
        if not self.activa or self.tipo_retencion != tipo_retencion:
            return False
        if fecha < self.vigente_desde:
            return False
        if self.vigente_hasta is not None and fecha > self.vigente_hasta:
            return False
        if self.tipos_proveedor and tipo_proveedor.value not in self.tipos_proveedor:
            return False
        if self.tipos_servicio and tipo_servicio.value not in self.tipos_servicio:
            return False
        if self.municipios and municipio not in self.municipios:
            return False
        return True


# ===============================
# SECCION 6: RESULTADOS DE PROCESAMIENTO
# ===============================

class ResultadoProcesamientoFactura(BaseModel):
    """
    Resultado de recalcular y persistir las retenciones de una factura.

    Estados Posibles:
        - "retenciones_calculadas": al menos una retencion aplica
        - "sin_retenciones_aplicables": calculo exitoso, ninguna aplica
        - "error": fallo el calculo o la persistencia (ver error)
    """
    invoice_id: str
    estado: EstadoProcesamiento
    desglose: Optional[DesgloseRetenciones] = None
    total_retencion: float = 0.0
    mensaje: str = ""
    error: Optional[str] = None


class ResultadoLote(BaseModel):
    """Resultado agregado de un recalculo por lote"""
    resultados: List[ResultadoProcesamientoFactura] = Field(default_factory=list)
    total_facturas: int = 0
    con_retenciones: int = 0
    sin_retenciones: int = 0
    fallidas: int = 0
    tiempo_total: float = 0.0


# ===============================
# METADATA DEL MODULO
# ===============================

__version__ = "3.0.0"
__author__ = "Sistema Preliquidador"
__architecture__ = "Clean Architecture - Domain Layer"

__total_modelos__ = 15
