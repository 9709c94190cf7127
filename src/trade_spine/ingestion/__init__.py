"""
Concurrent ingestion pipeline.

Import the pieces from their modules (``trade_spine.ingestion.orchestrator``,
``.batch``, ``.cancellation``, ``.progress``); the decoder depends on
``cancellation``, so this package keeps no eager imports.
"""
