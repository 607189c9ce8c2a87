"""
Tokenization engine for the PII tokenizer.

Exports:
    - TokenizationConfig: Immutable per-model configuration
    - FieldStateTracker: Per-record nil/pending/cache state machine
    - TokenizationDecisionEngine: Which fields a save must tokenize or clear
    - JsonSubFieldTokenizer: The same decisions for keys inside JSON columns
    - BatchEncryptionCoordinator: One encrypt call per save
    - BatchDecryptionCoordinator: One decrypt call per record or collection
    - SearchAdapter: Equality search over tokenized fields
    - SQLAlchemyRecordAdapter: ORM access used by all of the above
"""

from .decision_engine import FieldDecision, TokenizationAction, TokenizationDecisionEngine
from .decryption_coordinator import BatchDecryptionCoordinator
from .encryption_coordinator import BatchEncryptionCoordinator, WritePlan
from .field_state import FieldStateTracker, RecordTokenizationState, get_state
from .json_fields import JsonBlobPlan, JsonSubFieldTokenizer
from .record_adapter import RecordAdapter, SQLAlchemyRecordAdapter
from .registry import (
    DualWriteMode,
    JSONFieldMapping,
    TokenizableField,
    TokenizationConfig,
    build_config,
)
from .search import SearchAdapter

__all__ = [
    "BatchDecryptionCoordinator",
    "BatchEncryptionCoordinator",
    "DualWriteMode",
    "FieldDecision",
    "FieldStateTracker",
    "JSONFieldMapping",
    "JsonBlobPlan",
    "JsonSubFieldTokenizer",
    "RecordAdapter",
    "RecordTokenizationState",
    "SQLAlchemyRecordAdapter",
    "SearchAdapter",
    "TokenizableField",
    "TokenizationAction",
    "TokenizationConfig",
    "TokenizationDecisionEngine",
    "WritePlan",
    "build_config",
    "get_state",
]
