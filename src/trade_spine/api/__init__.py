"""HTTP API for Trade Spine."""
