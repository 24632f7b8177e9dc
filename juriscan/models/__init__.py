from .entities import (
    Classificacao,
    Distribuicao,
    Juiz,
    JurimetricsData,
    Jurisprudencia,
    Movimentacao,
    Periodo,
    Processo,
    Tribunal,
    Vara,
)
from .numero_processo import (
    NumeroProcesso,
    NumeroProcessoInvalido,
    formatar_numero_processo,
    is_numero_processo_valido,
    limpar_numero,
)
