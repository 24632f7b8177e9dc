# -*- coding: utf-8 -*-
from __future__ import annotations
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

_NAO_DIGITO = re.compile(r"\D+")

SEGMENTOS = {
    1: "STF",
    2: "CNJ",
    3: "STJ",
    4: "Justiça Federal",
    5: "Justiça do Trabalho",
    6: "Justiça Eleitoral",
    7: "Justiça Militar da União",
    8: "Justiça Estadual",
    9: "Justiça Militar Estadual",
}

# código TR (2 dígitos) -> UF, para segmentos estadual e eleitoral
UF_POR_CODIGO = {
    "01": "AC", "02": "AL", "03": "AP", "04": "AM", "05": "BA",
    "06": "CE", "07": "DF", "08": "ES", "09": "GO", "10": "MA",
    "11": "MT", "12": "MS", "13": "MG", "14": "PA", "15": "PB",
    "16": "PR", "17": "PE", "18": "PI", "19": "RJ", "20": "RN",
    "21": "RS", "22": "RO", "23": "RR", "24": "SC", "25": "SE",
    "26": "SP", "27": "TO",
}


def limpar_numero(numero: str) -> str:
    return _NAO_DIGITO.sub("", numero or "")


def calcular_digito_verificador(sequencial: str, ano: str, segmento: str, tribunal: str, origem: str) -> str:
    """DV do CNJ (Res. 65/2008, ISO 7064 mod 97-10): 98 - (NNNNNNN AAAA J TR OOOO 00 mod 97)."""
    base = int(f"{sequencial}{ano}{segmento}{tribunal}{origem}00")
    return f"{98 - (base % 97):02d}"


class NumeroProcessoInvalido(ValueError):
    pass


@dataclass(frozen=True)
class NumeroProcesso:
    """Número de processo no padrão CNJ: NNNNNNN-DD.AAAA.J.TR.OOOO."""

    sequencial: str
    digito_verificador: str
    ano: int
    segmento: int
    tribunal: str
    origem: str

    @classmethod
    def parse(cls, numero: str, *, validar_dv: bool = True) -> "NumeroProcesso":
        n = limpar_numero(numero)
        if len(n) != 20:
            raise NumeroProcessoInvalido(
                f"Número de processo inválido: deve ter 20 dígitos, recebeu {len(n)}"
            )
        np_ = cls(
            sequencial=n[0:7],
            digito_verificador=n[7:9],
            ano=int(n[9:13]),
            segmento=int(n[13]),
            tribunal=n[14:16],
            origem=n[16:20],
        )
        if validar_dv and not np_.dv_valido():
            raise NumeroProcessoInvalido("Número de processo com dígito verificador inválido")
        ano_atual = date.today().year
        if np_.ano < 1900 or np_.ano > ano_atual + 1:
            raise NumeroProcessoInvalido(f"Ano inválido no número do processo: {np_.ano}")
        if np_.segmento not in SEGMENTOS:
            raise NumeroProcessoInvalido(f"Segmento de justiça inválido: {np_.segmento}")
        return np_

    @classmethod
    def try_parse(cls, numero: str, *, validar_dv: bool = True) -> Optional["NumeroProcesso"]:
        try:
            return cls.parse(numero, validar_dv=validar_dv)
        except NumeroProcessoInvalido:
            return None

    def dv_valido(self) -> bool:
        esperado = calcular_digito_verificador(
            self.sequencial, f"{self.ano:04d}", str(self.segmento), self.tribunal, self.origem
        )
        return esperado == self.digito_verificador

    def apenas_digitos(self) -> str:
        return (
            f"{self.sequencial}{self.digito_verificador}{self.ano:04d}"
            f"{self.segmento}{self.tribunal}{self.origem}"
        )

    def formatado(self) -> str:
        return (
            f"{self.sequencial}-{self.digito_verificador}.{self.ano:04d}."
            f"{self.segmento}.{self.tribunal}.{self.origem}"
        )

    def segmento_justica(self) -> str:
        return SEGMENTOS.get(self.segmento, "Desconhecido")

    def sigla_tribunal(self) -> str:
        seg, tr = self.segmento, self.tribunal
        if seg == 1:
            return "STF"
        if seg == 3:
            return "STJ"
        if seg == 4:
            return f"TRF{int(tr)}"
        if seg == 5:
            return "TST" if tr == "00" else f"TRT{int(tr)}"
        if seg == 6:
            return "TSE" if tr == "00" else f"TRE{UF_POR_CODIGO.get(tr, tr)}"
        if seg == 8:
            uf = UF_POR_CODIGO.get(tr, tr)
            return "TJDFT" if uf == "DF" else f"TJ{uf}"
        return f"Tribunal {tr}"

    def __str__(self) -> str:
        return self.formatado()


def is_numero_processo_valido(numero: str, *, validar_dv: bool = True) -> bool:
    return NumeroProcesso.try_parse(numero, validar_dv=validar_dv) is not None


def formatar_numero_processo(numero: str) -> Optional[str]:
    """Formata no padrão CNJ; None se não tiver 20 dígitos (DV não é conferido)."""
    n = limpar_numero(numero)
    if len(n) != 20:
        return None
    return f"{n[0:7]}-{n[7:9]}.{n[9:13]}.{n[13]}.{n[14:16]}.{n[16:20]}"
