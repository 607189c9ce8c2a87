"""Shared test doubles and mapped models for the PII tokenizer tests."""
