"""
LLM-backed services: job analysis, screening answers, Upwork proposals
and CSS selector repair, all on one OpenAI-compatible completion client.
"""

from .completion_service import CompletionService, safe_json_loads
from .job_analyzer import JobAnalyzer
from .answer_generator import AnswerGenerator
from .proposal_generator import ProposalGenerator
from .selector_ai import SelectorAI, SelectorRepair

__all__ = [
    "CompletionService",
    "safe_json_loads",
    "JobAnalyzer",
    "AnswerGenerator",
    "ProposalGenerator",
    "SelectorAI",
    "SelectorRepair",
]
