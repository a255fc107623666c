"""ORM models exposed for metadata discovery."""
from app.db.models.analysis import Analysis
from app.db.models.api_reminder import ApiReminder
from app.db.models.api_request import ApiRequest
from app.db.models.credit_ledger import CreditLedgerEntry
from app.db.models.prompt_template import PromptTemplate
from app.db.models.subtask import Subtask
from app.db.models.task import Task
from app.db.models.transaction import Transaction
from app.db.models.user import User

__all__ = [
    "Analysis",
    "ApiReminder",
    "ApiRequest",
    "CreditLedgerEntry",
    "PromptTemplate",
    "Subtask",
    "Task",
    "Transaction",
    "User",
]
