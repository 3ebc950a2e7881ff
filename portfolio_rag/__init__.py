"""
Portfolio RAG: keeps a vector index in sync with portfolio content and
decides, per question, whether retrieved context should reach the model.
"""

__version__ = "1.0.0"
