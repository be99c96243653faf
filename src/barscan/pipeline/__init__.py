"""
Pipeline module for barcode extraction.

Provides the PDF discovery, per-PDF worker, record model and spreadsheet
export shared by the batch CLI and the upload service.
"""
