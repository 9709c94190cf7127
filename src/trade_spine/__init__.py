"""Trade Spine - B3 trade file ingestion and aggregation."""

__version__ = "0.1.0"
