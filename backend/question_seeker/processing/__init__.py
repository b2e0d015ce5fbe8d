"""
Document Processing Package

Text extraction for stored documents:
  - ocr.py  BaseOCRClient + TextractOCRClient (async job API, bounded polling)
"""
