"""
Tokenized Field Descriptors for the PII tokenizer.

Generated per field by ``tokenize_pii`` so that application code keeps
reading and writing plain values while the row stores tokens.

Usage:
    @tokenize_pii(fields={"email": PiiType.EMAIL}, ...)
    class User(Tokenizable, Base):
        _email_plaintext = mapped_column("email", String, nullable=True)
        email_token = mapped_column(String, nullable=True)

    user.email = "jane@example.com"  # pending until the next flush
    user.email                        # decrypted lazily, cached per instance
    user.profile_details_name         # JsonKeyDescriptor, read-only

Features:
- Reads follow the record's state machine (nil, pending, cache, decrypt)
- Writes never call the encryption service; tokenization happens at flush
- Class-level access returns the descriptor (for introspection)
"""

from __future__ import annotations

from typing import Any, overload

TOKENIZER_ATTR = "__pii_tokenizer__"


def tokenizer_for(owner: type[Any]) -> Any:
    """Return the ModelTokenizer installed on a model class."""
    tokenizer = getattr(owner, TOKENIZER_ATTR, None)
    if tokenizer is None:
        raise AttributeError(f"{owner.__name__} is not configured with tokenize_pii")
    return tokenizer


class TokenizedFieldDescriptor:
    """
    Descriptor exposing one tokenized field as a plain attribute.

    Args:
        field_name: The configured field name (e.g. "email"). The token and
            plaintext columns are looked up in the model's configuration.
    """

    def __init__(self, field_name: str) -> None:
        self.field_name = field_name
        self.public_name = field_name

    def __set_name__(self, owner: type[Any], name: str) -> None:
        """Called when the descriptor is assigned to a class attribute."""
        self.public_name = name

    @overload
    def __get__(
        self, obj: None, objtype: type[Any] | None = None,
    ) -> TokenizedFieldDescriptor: ...
    @overload
    def __get__(
        self, obj: Any, objtype: type[Any] | None = None,
    ) -> Any: ...

    def __get__(
        self, obj: Any, objtype: type[Any] | None = None,
    ) -> Any:
        if obj is None:
            return self
        return tokenizer_for(type(obj)).read_field(obj, self.field_name)

    def __set__(self, obj: Any, value: Any) -> None:
        tokenizer_for(type(obj)).assign_field(obj, self.field_name, value)


class JsonKeyDescriptor:
    """
    Read-only descriptor for one tokenized key of a JSON column.

    Exposed as ``<json_column>_<key>``. Write the JSON column itself to
    change the value.
    """

    def __init__(self, json_column: str, key: str) -> None:
        self.json_column = json_column
        self.key = key
        self.public_name = f"{json_column}_{key}"

    def __set_name__(self, owner: type[Any], name: str) -> None:
        self.public_name = name

    @overload
    def __get__(
        self, obj: None, objtype: type[Any] | None = None,
    ) -> JsonKeyDescriptor: ...
    @overload
    def __get__(
        self, obj: Any, objtype: type[Any] | None = None,
    ) -> Any: ...

    def __get__(
        self, obj: Any, objtype: type[Any] | None = None,
    ) -> Any:
        if obj is None:
            return self
        return tokenizer_for(type(obj)).read_json_key(obj, self.json_column, self.key)

    def __set__(self, obj: Any, value: Any) -> None:
        raise AttributeError(
            f"{self.public_name} is read-only; assign {self.json_column} instead"
        )


__all__ = ["TOKENIZER_ATTR", "JsonKeyDescriptor", "TokenizedFieldDescriptor", "tokenizer_for"]
