"""
Models package for the PII tokenizer.

Usage:
    from pii_tokenizer.models import Tokenizable, tokenize_pii
"""

from pii_tokenizer.models.tokenizable import ModelTokenizer, Tokenizable, tokenize_pii

__all__ = ["ModelTokenizer", "Tokenizable", "tokenize_pii"]
