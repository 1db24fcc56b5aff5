"""Retrieval components."""

from .retriever import Retriever

__all__ = ["Retriever"]
