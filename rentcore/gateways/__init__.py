"""Payment capture adapters."""
