"""
B3 cash-market trades (NEGOCIOSAVISTA files).

Modules:
    models      TradeRecord, ParseFailure, AggregatedData, IngestionReport
    parser      line decoding and the streaming TradeDecoder
    rejects     malformed-record sinks
    repository  PostgreSQL / SQLite gateways
    service     ingestion entry point and aggregate queries
"""
