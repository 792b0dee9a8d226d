from functools import lru_cache
from ..core.config import settings
from ..services.accounting import AccountingSystem, create_accounting_system
from ..services.approval_rules import create_approval_rules
from ..services.approval_workflow import ApprovalWorkflow
from ..services.events.event_publisher import get_event_publisher
from ..services.form_recognizer import DocumentTextExtractor
from ..services.graph import post_approval_card
from ..services.invoice_analyzer import InvoiceAnalyzer
from ..services.invoice_fetcher import InvoiceFetcher
from ..services.matching import AiProjectMatcher, HeuristicProjectMatcher, MatcherChain
from ..services.storage import InvoiceStoreBase, SQLiteInvoiceStore

# Providers for FastAPI ``Depends``. Tests replace them through
# ``app.dependency_overrides``.


@lru_cache
def get_store() -> InvoiceStoreBase:
    return SQLiteInvoiceStore(db_path=settings.database_path)


@lru_cache
def get_accounting_system() -> AccountingSystem:
    return create_accounting_system()


def build_matcher_chain() -> MatcherChain:
    """Heuristic rules first, Azure OpenAI as the fallback when configured"""
    chain = MatcherChain([HeuristicProjectMatcher()])
    ai_matcher = AiProjectMatcher.from_settings()
    if ai_matcher is not None:
        chain.append(ai_matcher)
    return chain


def get_analyzer() -> InvoiceAnalyzer:
    return InvoiceAnalyzer(
        store=get_store(),
        accounting=get_accounting_system(),
        extractor=DocumentTextExtractor.from_settings(),
        matchers=build_matcher_chain(),
        rules=create_approval_rules(),
        notifier=post_approval_card,
        event_publisher=get_event_publisher(),
    )


def get_fetcher() -> InvoiceFetcher:
    return InvoiceFetcher(store=get_store(), accounting=get_accounting_system())


def get_workflow() -> ApprovalWorkflow:
    return ApprovalWorkflow(
        store=get_store(),
        accounting=get_accounting_system(),
        event_publisher=get_event_publisher(),
    )
