"""Reuse metadata, decisions and the mechanisms that keep databases clean."""

from scenario_engine.reuse.decision import ReuseDecision, ReuseDecisionEngine, ReuseState
from scenario_engine.reuse.journal import Journal
from scenario_engine.reuse.metadata_store import ReuseMetadataStore
from scenario_engine.reuse.transaction import TransactionWrapper, WrappedTransaction

__all__ = [
    "Journal",
    "ReuseDecision",
    "ReuseDecisionEngine",
    "ReuseMetadataStore",
    "ReuseState",
    "TransactionWrapper",
    "WrappedTransaction",
]
