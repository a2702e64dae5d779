"""Lõi dspace-ingest: client DSpace/OCR/Claude, gợi ý collection, đẩy tài liệu lên DSpace."""
__version__ = "0.1.0"
