"""
Mapped models used across the test suite.

- User: token-only storage (dual_write off, read_from_token on)
- Contact: dual write during migration, reads prefer plaintext
- Customer: dual write, reads and queries from tokens
- Profile: tokenized keys inside JSON columns (dict and string storage)
- Account: entity id derived from the auto-increment primary key
- LegacyUser: plaintext column already dropped
- Member: entity id taken from a nullable column
"""

from __future__ import annotations

from sqlalchemy import JSON, Boolean, Column, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase

from pii_tokenizer import EntityType, PiiType, Tokenizable, tokenize_pii


class Base(DeclarativeBase):
    pass


@tokenize_pii(
    fields={
        "first_name": PiiType.NAME,
        "last_name": PiiType.NAME,
        "email": PiiType.EMAIL,
    },
    entity_type=EntityType.USER_UUID,
    entity_id=lambda user: f"user_{user.external_id}",
)
class User(Tokenizable, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(64), nullable=True)
    active = Column(Boolean, default=True)

    _first_name_plaintext = Column("first_name", String(255), nullable=True)
    first_name_token = Column(String(255), nullable=True)
    _last_name_plaintext = Column("last_name", String(255), nullable=True)
    last_name_token = Column(String(255), nullable=True)
    _email_plaintext = Column("email", String(255), nullable=True)
    email_token = Column(String(255), nullable=True)


@tokenize_pii(
    fields=["email", "phone"],
    entity_type=lambda contact: f"contact_{contact.kind}",
    entity_id=lambda contact: f"contact_{contact.external_id}",
    dual_write=True,
)
class Contact(Tokenizable, Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(64), nullable=True)
    kind = Column(String(32), default="primary")

    _email_plaintext = Column("email", String(255), nullable=True)
    email_token = Column(String(255), nullable=True)
    _phone_plaintext = Column("phone", String(64), nullable=True)
    phone_token = Column(String(255), nullable=True)


@tokenize_pii(
    fields={"email": PiiType.EMAIL},
    entity_type="customer_uuid",
    entity_id=lambda customer: f"customer_{customer.external_id}",
    dual_write=True,
    read_from_token=True,
)
class Customer(Tokenizable, Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(64), nullable=True)

    _email_plaintext = Column("email", String(255), nullable=True)
    email_token = Column(String(255), nullable=True)


@tokenize_pii(
    fields={"email": PiiType.EMAIL},
    entity_type=EntityType.PROFILE_UUID,
    entity_id=lambda profile: f"profile_{profile.uuid}",
    json_fields={
        "profile_details": {"name": PiiType.NAME, "email_id": PiiType.EMAIL},
        "contact_info": {"phone": PiiType.PHONE},
    },
)
class Profile(Tokenizable, Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True)
    uuid = Column(String(64), nullable=True)

    _email_plaintext = Column("email", String(255), nullable=True)
    email_token = Column(String(255), nullable=True)
    profile_details = Column(JSON, nullable=True)
    profile_details_token = Column(JSON, nullable=True)
    contact_info = Column(Text, nullable=True)
    contact_info_token = Column(Text, nullable=True)


@tokenize_pii(
    fields={"email": PiiType.EMAIL},
    entity_type="account_uuid",
    entity_id=lambda account: account.id,
    entity_id_requires_identity=True,
)
class Account(Tokenizable, Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)

    _email_plaintext = Column("email", String(255), nullable=True)
    email_token = Column(String(255), nullable=True)


@tokenize_pii(
    fields={"email": PiiType.EMAIL},
    entity_type=EntityType.USER_UUID,
    entity_id=lambda user: f"legacy_{user.external_id}",
)
class LegacyUser(Tokenizable, Base):
    __tablename__ = "legacy_users"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(64), nullable=True)
    email_token = Column(String(255), nullable=True)


@tokenize_pii(
    fields={"email": PiiType.EMAIL},
    entity_type="member_uuid",
    entity_id=lambda member: member.external_id,
    json_fields={"preferences": {"phone": PiiType.PHONE}},
    dual_write=True,
)
class Member(Tokenizable, Base):
    __tablename__ = "members"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(64), nullable=True)

    _email_plaintext = Column("email", String(255), nullable=True)
    email_token = Column(String(255), nullable=True)
    preferences = Column(JSON, nullable=True)
    preferences_token = Column(JSON, nullable=True)
