"""
Pruebas del ValidadorEntidades: heuristicas de NIT, nombre y cache en repositorio.
"""

import pytest

from Clasificador.validador_entidades import (
    ValidadorEntidades,
    es_nit_sospechoso,
    extraer_nit_de_nombre,
    sanitizar_nit,
)
from database.database import MemoriaDatabase
from modelos import (
    ClasificacionEntidad,
    EstadoVerificacion,
    TipoEntidad,
    TipoRegimen,
)
from conftest import crear_entidad


class RepositorioCaido:
    def obtener_entidad(self, nit):
        raise ConnectionError("sin conexion")

    def guardar_entidad(self, entidad):
        raise ConnectionError("sin conexion")


class TestFuncionesNit:

    @pytest.mark.parametrize("entrada, esperado", [
        ("900123456-7", "900123456"),
        ("900.123.456-7", "900123456"),
        (" 79876543 ", "79876543"),
        ("NIT 800-1", "800"),
        (None, ""),
        ("sin numero", ""),
    ])
    def test_sanitizar_nit(self, entrada, esperado):
        assert sanitizar_nit(entrada) == esperado

    def test_extraer_nit_de_nombre(self):
        assert extraer_nit_de_nombre("ACME S.A.S. NIT 900.123.456-7") == "900123456"
        assert extraer_nit_de_nombre("Proveedor sin identificacion") == ""

    @pytest.mark.parametrize("nit", ["000000000", "123456789", "987654321"])
    def test_nit_sospechoso(self, nit):
        assert es_nit_sospechoso(nit)

    def test_nit_normal_no_es_sospechoso(self):
        assert not es_nit_sospechoso("900123456")


class TestInferencia:

    def test_persona_juridica_por_nit_y_nombre(self):
        resultado = ValidadorEntidades().validar_entidad("900123456-7", "Servicios Integrales S.A.S.")

        assert resultado.clasificacion == ClasificacionEntidad.INFERIDA
        assert resultado.entidad.tipo_entidad == TipoEntidad.PERSONA_JURIDICA
        assert resultado.entidad.tipo_regimen == TipoRegimen.COMUN
        assert resultado.entidad.es_agente_retencion
        assert resultado.entidad.es_sujeto_ica
        assert resultado.entidad.estado_verificacion == EstadoVerificacion.AUTOMATICA
        assert resultado.confianza == pytest.approx(0.9)
        assert not resultado.requiere_revision_manual

    def test_persona_natural_por_cedula(self):
        resultado = ValidadorEntidades().validar_entidad("79876543", "Juan Perez")

        assert resultado.entidad.tipo_entidad == TipoEntidad.PERSONA_NATURAL
        assert resultado.entidad.tipo_regimen == TipoRegimen.SIMPLIFICADO
        assert not resultado.entidad.es_agente_retencion
        assert resultado.confianza == pytest.approx(0.8)

    def test_nombre_societario_con_cedula_baja_confianza(self):
        resultado = ValidadorEntidades().validar_entidad("79876543", "Inversiones Perez Ltda")

        assert resultado.entidad.tipo_entidad == TipoEntidad.PERSONA_JURIDICA
        assert resultado.confianza == pytest.approx(0.7)
        assert resultado.requiere_revision_manual

    def test_regimen_especial(self):
        resultado = ValidadorEntidades().validar_entidad("900555444", "Fundación Manos Unidas")
        assert resultado.entidad.tipo_regimen == TipoRegimen.ESPECIAL

    def test_identificacion_corta(self):
        resultado = ValidadorEntidades().validar_entidad("1234", "")
        assert resultado.confianza == pytest.approx(0.3)
        assert resultado.requiere_revision_manual

    def test_nit_sospechoso_requiere_revision(self):
        resultado = ValidadorEntidades().validar_entidad("999999999", "Prueba S.A.S.")
        assert resultado.requiere_revision_manual
        assert "Identificacion con patron sospechoso" in resultado.notas_validacion


class TestEntidadDesconocida:

    def test_sin_nit_retorna_placeholder(self):
        repo = MemoriaDatabase()
        resultado = ValidadorEntidades(repo).validar_entidad(None, "Proveedor Sin Datos")

        assert resultado.clasificacion == ClasificacionEntidad.DESCONOCIDA
        assert resultado.confianza == 0.0
        assert resultado.requiere_revision_manual
        assert resultado.entidad.nit == ""
        assert not resultado.entidad.es_agente_retencion
        assert not resultado.entidad.es_sujeto_ica
        assert resultado.estado_verificacion == EstadoVerificacion.PENDIENTE
        assert repo.entidades == {}

    def test_nit_tomado_del_nombre(self):
        resultado = ValidadorEntidades().validar_entidad("", "ACME S.A.S. NIT 900.123.456-7")

        assert resultado.clasificacion == ClasificacionEntidad.INFERIDA
        assert resultado.entidad.nit == "900123456"
        assert "NIT extraido del nombre: 900123456" in resultado.notas_validacion


class TestRepositorio:

    def test_entidad_verificada_no_se_reclasifica(self):
        repo = MemoriaDatabase()
        repo.guardar_entidad(crear_entidad(
            "79876543",
            juridica=True,
            estado_verificacion=EstadoVerificacion.VERIFICADA,
            confianza_verificacion=1.0,
        ))

        resultado = ValidadorEntidades(repo).validar_entidad("79876543", "Juan Perez")

        assert resultado.clasificacion == ClasificacionEntidad.VERIFICADA
        assert resultado.entidad.tipo_entidad == TipoEntidad.PERSONA_JURIDICA
        assert resultado.confianza == 1.0
        assert not resultado.requiere_revision_manual

    def test_entidad_inferida_se_guarda(self):
        repo = MemoriaDatabase()
        ValidadorEntidades(repo).validar_entidad("900123456-7", "Servicios Integrales S.A.S.")

        guardada = repo.obtener_entidad("900123456")
        assert guardada is not None
        assert guardada.estado_verificacion == EstadoVerificacion.AUTOMATICA

    def test_entidad_no_verificada_conserva_municipios(self):
        repo = MemoriaDatabase()
        repo.guardar_entidad(crear_entidad("900123456", municipios={"Medellín"}, nombre="ACME S.A.S."))

        resultado = ValidadorEntidades(repo).validar_entidad("900123456", None)

        assert resultado.clasificacion == ClasificacionEntidad.INFERIDA
        assert resultado.entidad.municipios == {"Medellín"}
        assert resultado.entidad.nombre == "ACME S.A.S."

    def test_repositorio_caido_no_impide_clasificar(self):
        resultado = ValidadorEntidades(RepositorioCaido()).validar_entidad("900123456", "ACME S.A.S.")

        assert resultado.clasificacion == ClasificacionEntidad.INFERIDA
        assert resultado.entidad.tipo_entidad == TipoEntidad.PERSONA_JURIDICA
        assert any("no disponible" in nota for nota in resultado.notas_validacion)
        assert any("no persistida" in nota for nota in resultado.notas_validacion)


def test_validar_entidades_lote():
    resultados = ValidadorEntidades().validar_entidades([
        ("900123456", "ACME S.A.S."),
        (None, None),
    ])
    assert [r.clasificacion for r in resultados] == [
        ClasificacionEntidad.INFERIDA,
        ClasificacionEntidad.DESCONOCIDA,
    ]
