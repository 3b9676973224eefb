"""Adapters binding the pdfsmith core to external tooling."""
