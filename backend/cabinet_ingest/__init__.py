"""Cabinet DXF ingestion: parse CAD drawings and extract catalog-ready cabinet records."""

__version__ = "1.0.0"
