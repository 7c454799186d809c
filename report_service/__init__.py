"""
Lab Report Relay - OCR + Gemini lab report summarization service.
"""

__version__ = "0.3.0"
