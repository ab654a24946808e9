"""
VALIDADOR DE ENTIDADES TRIBUTARIAS
==================================

Resuelve proveedor y cliente de una factura a EntidadTributaria.

FLUJO:
1. Sanitiza el NIT (solo digitos, sin digito de verificacion)
2. Si no hay NIT intenta extraerlo del nombre; si no lo encuentra
   retorna un placeholder "desconocida" (no se inventa un NIT)
3. Busca la entidad en el repositorio; verificada -> se retorna tal cual
4. Si no esta verificada, clasifica por heuristica (formato del NIT y
   palabras clave del nombre) y persiste el resultado

PRINCIPIOS SOLID APLICADOS:
- SRP: Solo clasifica entidades, no calcula retenciones
- DIP: Depende de un repositorio inyectado (obtener_entidad / guardar_entidad)

Nunca lanza excepciones por NIT vacio, mal formado o por fallas del
repositorio: esas condiciones quedan en notas_validacion.

Autor: Sistema Preliquidador
Version: 3.0
"""

import logging
import re
from typing import Iterable, List, Optional, Tuple

from modelos import (
    ClasificacionEntidad,
    EntidadTributaria,
    EstadoVerificacion,
    ResultadoValidacionEntidad,
    TipoEntidad,
    TipoRegimen,
)
from .clasificador_servicios import normalizar_texto

logger = logging.getLogger(__name__)

# ===============================
# HEURISTICAS DE CLASIFICACION
# ===============================

CONFIANZA_BASE = 0.5
BONO_PATRON_ESTANDAR = 0.3
BONO_NOMBRE_CONSISTENTE = 0.1
PENALIZACION_LONGITUD = 0.2
PENALIZACION_CONFLICTO = 0.1
CONFIANZA_MAXIMA_INFERIDA = 0.95
CONFIANZA_MINIMA_REVISION = 0.8

# Formas societarias sobre texto normalizado (minusculas, sin tildes)
PATRONES_PERSONA_JURIDICA = [
    r"\bs\.?\s?a\.?\s?s\b",
    r"\bs\.?\s?a\b\.?",
    r"\bltda\b",
    r"\blimitada\b",
    r"\be\.?\s?u\b\.?",
    r"\bs\.?\s?c\.?\s?a\b\.?",
    r"\bs\.? en c\b",
    r"\bsociedad\b",
    r"\bcompania\b",
    r"\bconsorcio\b",
    r"\bunion temporal\b",
    r"\bcorporacion\b",
    r"\bfundacion\b",
    r"\basociacion\b",
    r"\bcooperativa\b",
]

PALABRAS_REGIMEN_ESPECIAL = ("fundacion", "corporacion", "asociacion", "cooperativa")

PATRON_NIT_EN_NOMBRE = re.compile(r"(?<!\d)(\d{8,10})(?:\s?-\s?\d)?(?!\d)")


def sanitizar_nit(nit: Optional[str]) -> str:
    """Deja solo los digitos del NIT, descartando el digito de verificacion tras el guion"""
    if nit is None:
        return ""
    texto = str(nit).strip()
    if "-" in texto:
        texto = texto.split("-")[0]
    return re.sub(r"\D", "", texto)


def extraer_nit_de_nombre(nombre: Optional[str]) -> str:
    """Busca un NIT dentro del nombre (ej. 'ACME S.A.S. NIT 900.123.456-7')"""
    if not nombre:
        return ""
    compacto = re.sub(r"(?<=\d)\.(?=\d)", "", nombre)
    coincidencia = PATRON_NIT_EN_NOMBRE.search(compacto)
    return coincidencia.group(1) if coincidencia else ""


def es_nit_sospechoso(nit: str) -> bool:
    """Todos los digitos iguales o secuencia consecutiva (000000000, 123456789)"""
    if len(set(nit)) == 1:
        return True
    return nit in "01234567890123" or nit in "98765432109876"


def es_nombre_persona_juridica(nombre_normalizado: str) -> bool:
    return any(re.search(patron, nombre_normalizado) for patron in PATRONES_PERSONA_JURIDICA)


class ValidadorEntidades:
    """
    Validador de proveedores y clientes.

    Args:
        repositorio: Objeto con obtener_entidad(nit) y guardar_entidad(entidad).
            None para trabajar solo con heuristicas (sin cache ni persistencia).
    """

    def __init__(self, repositorio=None):
        self.repositorio = repositorio

    def validar_entidad(self, nit: Optional[str], nombre: Optional[str] = None) -> ResultadoValidacionEntidad:
        """
        Resuelve un NIT y nombre a una entidad tributaria.

        Args:
            nit: NIT o cedula, con o sin digito de verificacion. Puede ser None.
            nombre: Razon social o nombre mostrado en la factura

        Returns:
            ResultadoValidacionEntidad con clasificacion verificada, inferida o desconocida
        """
        nombre = (nombre or "").strip()
        notas: List[str] = []

        nit_limpio = sanitizar_nit(nit)
        if not nit_limpio:
            nit_limpio = extraer_nit_de_nombre(nombre)
            if nit_limpio:
                notas.append(f"NIT extraido del nombre: {nit_limpio}")

        if not nit_limpio:
            logger.warning(f" Entidad sin NIT utilizable: '{nombre or 'sin nombre'}'")
            return self._crear_placeholder(nombre, notas + ["NIT ausente o invalido"])

        entidad_existente, error_repositorio = self._buscar_en_repositorio(nit_limpio)
        if error_repositorio:
            notas.append(error_repositorio)

        if entidad_existente is not None:
            if entidad_existente.estado_verificacion == EstadoVerificacion.VERIFICADA:
                logger.debug(f"Entidad {nit_limpio} verificada en base de datos")
                return ResultadoValidacionEntidad(
                    entidad=entidad_existente,
                    clasificacion=ClasificacionEntidad.VERIFICADA,
                    confianza=entidad_existente.confianza_verificacion,
                    notas_validacion=notas + ["Entidad verificada en base de datos"],
                    requiere_revision_manual=False,
                )
            notas.append("Entidad existente sin verificar, se reclasifica por heuristica")

        entidad, confianza, notas_heuristica, sospechoso = self._inferir_entidad(nit_limpio, nombre)
        notas.extend(notas_heuristica)

        if entidad_existente is not None:
            entidad.municipios = set(entidad_existente.municipios)
            if not nombre:
                entidad.nombre = entidad_existente.nombre

        self._guardar_en_repositorio(entidad, notas)

        requiere_revision = confianza < CONFIANZA_MINIMA_REVISION or sospechoso
        logger.info(f" Entidad {nit_limpio} inferida como {entidad.tipo_entidad.value} "
                    f"(confianza {confianza:.2f}{', revision manual' if requiere_revision else ''})")

        return ResultadoValidacionEntidad(
            entidad=entidad,
            clasificacion=ClasificacionEntidad.INFERIDA,
            confianza=confianza,
            notas_validacion=notas,
            requiere_revision_manual=requiere_revision,
        )

    def validar_entidades(self, entidades: Iterable[Tuple[Optional[str], Optional[str]]]) -> List[ResultadoValidacionEntidad]:
        """Valida una lista de (nit, nombre); un fallo individual produce un placeholder"""
        resultados = []
        for nit, nombre in entidades:
            try:
                resultados.append(self.validar_entidad(nit, nombre))
            except Exception as e:
                logger.error(f" Error validando entidad {nit}: {e}")
                resultados.append(self._crear_placeholder(nombre or "", [f"Error de validacion: {e}"]))
        return resultados

    # ===============================
    # METODOS PRIVADOS
    # ===============================

    def _buscar_en_repositorio(self, nit: str) -> Tuple[Optional[EntidadTributaria], Optional[str]]:
        if self.repositorio is None:
            return None, None
        try:
            return self.repositorio.obtener_entidad(nit), None
        except Exception as e:
            logger.warning(f" No se pudo consultar la entidad {nit}: {e}")
            return None, f"Repositorio no disponible al consultar: {e}"

    def _guardar_en_repositorio(self, entidad: EntidadTributaria, notas: List[str]) -> None:
        if self.repositorio is None:
            return
        try:
            self.repositorio.guardar_entidad(entidad)
        except Exception as e:
            logger.warning(f" No se pudo guardar la entidad {entidad.nit}: {e}")
            notas.append(f"Entidad no persistida: {e}")

    def _inferir_entidad(self, nit: str, nombre: str) -> Tuple[EntidadTributaria, float, List[str], bool]:
        """Clasificacion heuristica por formato del NIT y nombre"""
        notas = []
        nombre_normalizado = normalizar_texto(nombre)
        longitud = len(nit)

        juridica_por_nombre = es_nombre_persona_juridica(nombre_normalizado)
        # NIT de empresa: 9 digitos iniciando en 8 o 9 (10 si trae el DV pegado)
        patron_juridica = longitud in (9, 10) and nit[0] in "89"
        # Cedula: hasta 8 digitos, o 10 digitos iniciando en 1
        patron_natural = 6 <= longitud <= 8 or (longitud == 10 and nit[0] == "1")

        if juridica_por_nombre or patron_juridica:
            tipo_entidad = TipoEntidad.PERSONA_JURIDICA
        elif patron_natural:
            tipo_entidad = TipoEntidad.PERSONA_NATURAL
        elif longitud >= 9:
            tipo_entidad = TipoEntidad.PERSONA_JURIDICA
        else:
            tipo_entidad = TipoEntidad.PERSONA_NATURAL

        confianza = CONFIANZA_BASE
        if patron_juridica:
            confianza += BONO_PATRON_ESTANDAR
            notas.append("NIT con formato de persona juridica")
            if longitud == 10:
                notas.append("NIT de 10 digitos, posible digito de verificacion incluido")
        elif patron_natural:
            confianza += BONO_PATRON_ESTANDAR
            notas.append("Identificacion con formato de cedula")

        if juridica_por_nombre:
            if patron_natural:
                confianza -= PENALIZACION_CONFLICTO
                notas.append("Nombre de persona juridica con identificacion de cedula")
            else:
                confianza += BONO_NOMBRE_CONSISTENTE
                notas.append("Forma societaria identificada en el nombre")

        if longitud < 6 or longitud > 12:
            confianza -= PENALIZACION_LONGITUD
            notas.append(f"Longitud de identificacion inusual ({longitud} digitos)")

        sospechoso = es_nit_sospechoso(nit)
        if sospechoso:
            notas.append("Identificacion con patron sospechoso")

        confianza = round(min(max(confianza, 0.0), CONFIANZA_MAXIMA_INFERIDA), 2)

        es_juridica = tipo_entidad == TipoEntidad.PERSONA_JURIDICA
        if any(re.search(rf"\b{palabra}\b", nombre_normalizado) for palabra in PALABRAS_REGIMEN_ESPECIAL):
            tipo_regimen = TipoRegimen.ESPECIAL
        elif es_juridica:
            tipo_regimen = TipoRegimen.COMUN
        else:
            tipo_regimen = TipoRegimen.SIMPLIFICADO

        entidad = EntidadTributaria(
            nit=nit,
            nombre=nombre,
            tipo_entidad=tipo_entidad,
            tipo_regimen=tipo_regimen,
            es_agente_retencion=es_juridica,
            es_sujeto_ica=es_juridica,
            es_declarante=es_juridica,
            estado_verificacion=EstadoVerificacion.AUTOMATICA,
            confianza_verificacion=confianza,
        )
        return entidad, confianza, notas, sospechoso

    @staticmethod
    def _crear_placeholder(nombre: str, notas: List[str]) -> ResultadoValidacionEntidad:
        """Entidad desconocida: sin NIT, no agente, no sujeto ICA, no persistida"""
        entidad = EntidadTributaria(
            nit="",
            nombre=nombre,
            tipo_entidad=TipoEntidad.PERSONA_NATURAL,
            tipo_regimen=TipoRegimen.SIMPLIFICADO,
            es_agente_retencion=False,
            es_sujeto_ica=False,
            es_declarante=False,
            estado_verificacion=EstadoVerificacion.PENDIENTE,
            confianza_verificacion=0.0,
        )
        return ResultadoValidacionEntidad(
            entidad=entidad,
            clasificacion=ClasificacionEntidad.DESCONOCIDA,
            confianza=0.0,
            notas_validacion=notas,
            requiere_revision_manual=True,
        )
