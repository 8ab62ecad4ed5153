"""Receipt calendar: photograph a receipt, review the extracted fields, keep a daily expense log."""

from .auth import IdentityProvider, SessionGate
from .config import AppConfig, load_config
from .controller import PipelineClients, PipelineController, PipelineState, create_controller
from .errors import (
    ExtractionFailure,
    IdentityFailure,
    ReceiptCalendarError,
    RepositoryFailure,
    ValidationFailure,
)
from .extraction import ExtractionClient, coerce_extraction
from .models import Category, DateRange, DraftForm, ExpenseRecord, SingleDate
from .preprocess import ImagePreprocessor
from .repository import ExpenseRepository, ExpenseStore

__all__ = [
    "AppConfig",
    "load_config",
    "Category",
    "DraftForm",
    "ExpenseRecord",
    "SingleDate",
    "DateRange",
    "ImagePreprocessor",
    "ExtractionClient",
    "coerce_extraction",
    "IdentityProvider",
    "SessionGate",
    "ExpenseStore",
    "ExpenseRepository",
    "PipelineClients",
    "PipelineController",
    "PipelineState",
    "create_controller",
    "ReceiptCalendarError",
    "ValidationFailure",
    "ExtractionFailure",
    "RepositoryFailure",
    "IdentityFailure",
]
