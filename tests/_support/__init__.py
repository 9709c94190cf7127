"""
Test support utilities for trade-spine tests.

Helpers that are not fixtures but are shared across test files: B3 line
builders here, fake gateways in ``gateways``.
"""

HEADER = (
    "DataReferencia;CodigoInstrumento;AcaoAtualizacao;PrecoNegocio;QuantidadeNegociada;"
    "HoraFechamento;CodigoIdentificadorNegocio;TipoSessaoPregao;DataNegocio;"
    "CodigoParticipanteComprador;CodigoParticipanteVendedor"
)


def build_line(
    code: str = "PETR4",
    price: str = "19,50",
    quantity: str = "100",
    closing_time: str = "103000123",
    trade_date: str = "2024-05-02",
) -> str:
    """One B3 line; only the columns the decoder reads vary."""
    return f"2024-05-02;{code};0;{price};{quantity};{closing_time};10;1;{trade_date};1;2"


def build_lines(count: int, code: str = "PETR4", trade_date: str = "2024-05-02") -> list[str]:
    """``count`` valid lines with distinct quantities 1..count."""
    return [
        build_line(code=code, quantity=str(i), closing_time=f"10{i:07d}", trade_date=trade_date)
        for i in range(1, count + 1)
    ]
