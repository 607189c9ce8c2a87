"""
Equality search over tokenized fields.

Rewrites ``field == value`` criteria on tokenized fields into
``<field>_token IN (tokens)`` where the tokens come from the encryption
service's search endpoint. If the service knows no token for a value the
query cannot match anything and is not executed at all.

Usage:
    adapter = SearchAdapter(User, config, get_encryption_gateway)
    users = adapter.where(session, email="jane@example.com", active=True)
    stmt = adapter.select(email="jane@example.com")  # SELECT ... WHERE email_token IN (...)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from sqlalchemy import false, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement, Select

from pii_tokenizer.core.registry import TokenizableField, TokenizationConfig
from pii_tokenizer.services.encryption_gateway import TokenGateway


class SearchAdapter:
    """
    Builds SQLAlchemy queries for criteria that may name tokenized fields.

    Args:
        model: The mapped model class.
        config: Its tokenization configuration.
        gateway_provider: Returns the gateway used for token search.
    """

    def __init__(
        self,
        model: type[Any],
        config: TokenizationConfig,
        gateway_provider: Callable[[], TokenGateway],
    ) -> None:
        self.model = model
        self.config = config
        self.gateway_provider = gateway_provider

    def conditions(self, criteria: Mapping[str, Any]) -> list[ColumnElement[bool]] | None:
        """
        Translate criteria into WHERE clauses.

        Returns:
            The clauses, or None when a tokenized value has no tokens and
            the query can be answered as empty without running it.
        """
        clauses: list[ColumnElement[bool]] = []
        for key, value in criteria.items():
            if not self.config.is_tokenized(key):
                clauses.append(self._column(key) == value)
                continue

            tokenizable = self.config.get_field(key)
            from_tokens = self.config.read_from_token or not self._is_mapped(tokenizable.plaintext_attr)

            if value is None:
                column = tokenizable.token_column if from_tokens else tokenizable.plaintext_attr
                clauses.append(self._column(column).is_(None))
            elif not from_tokens:
                clauses.append(self._column(tokenizable.plaintext_attr) == value)
            else:
                clause = self.token_clause(tokenizable, value)
                if clause is None:
                    return None
                clauses.append(clause)
        return clauses

    def token_clause(self, tokenizable: TokenizableField, value: Any) -> ColumnElement[bool] | None:
        """Return ``token_column IN (tokens)`` for a value, or None when nothing matches."""
        tokens = self.gateway_provider().search_tokens(value)
        if not tokens:
            return None
        return self._column(tokenizable.token_column).in_(tokens)

    def select(self, **criteria: Any) -> Select[Any]:
        """Build a SELECT; criteria without tokens yield an always-false WHERE."""
        clauses = self.conditions(criteria)
        statement = select(self.model)
        if clauses is None:
            return statement.where(false())
        return statement.where(*clauses) if clauses else statement

    def where(self, session: Session, **criteria: Any) -> list[Any]:
        clauses = self.conditions(criteria)
        if clauses is None:
            return []
        return list(session.scalars(select(self.model).where(*clauses)))

    def find_by(self, session: Session, **criteria: Any) -> Any | None:
        clauses = self.conditions(criteria)
        if clauses is None:
            return None
        return session.scalars(select(self.model).where(*clauses).limit(1)).first()

    def search_by_token(self, session: Session, name: str, value: Any, first: bool = True) -> Any:
        """
        Search a field's token column directly, whatever the read mode.

        Returns:
            The first match (or None) when ``first``, otherwise all matches.
        """
        empty: Any = None if first else []
        if value is None or not self.config.is_tokenized(name):
            return empty
        clause = self.token_clause(self.config.get_field(name), value)
        if clause is None:
            return empty
        statement = select(self.model).where(clause)
        if first:
            return session.scalars(statement.limit(1)).first()
        return list(session.scalars(statement))

    def _is_mapped(self, name: str) -> bool:
        return hasattr(self.model, name)

    def _column(self, name: str) -> Any:
        if not hasattr(self.model, name):
            raise AttributeError(f"{self.model.__name__} has no attribute '{name}'")
        return getattr(self.model, name)


__all__ = ["SearchAdapter"]
