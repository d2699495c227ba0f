"""wooai: knowledge base and RAG chat backend for a storefront shopping assistant."""

__version__ = "0.1.0"
