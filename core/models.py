#!/usr/bin/env python3
"""
Unified Data Models for the Automation Engine

All shared data models are defined here so the runner, adapters,
AI services and persistence layer agree on one shape.
"""

import copy
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field, asdict
from enum import Enum
from datetime import datetime


def utc_now_iso() -> str:
    return datetime.utcnow().isoformat()


# ============== Enums ==============

class PlatformType(str, Enum):
    """Supported job boards. The set is closed: adding one means adding an adapter."""
    LINKEDIN = "linkedin"
    INDEED = "indeed"
    UPWORK = "upwork"


class JobStatus(str, Enum):
    """Lifecycle of an extracted listing."""
    NEW = "new"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"
    APPLIED = "applied"
    ERROR = "error"


class AutomationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"


# ============== Search Profiles ==============

@dataclass
class SearchCriteria:
    """What to search for on a site."""
    keywords: List[str] = field(default_factory=list)
    location: List[str] = field(default_factory=list)
    date_posted: str = "pastWeek"  # past24hrs, pastWeek, pastMonth
    experience_level: List[str] = field(default_factory=list)
    job_type: List[str] = field(default_factory=list)  # full-time, contract, freelance, part-time
    salary_min: Optional[int] = None
    easy_apply_only: bool = False
    exclude_terms: List[str] = field(default_factory=list)
    remote_only: bool = False


@dataclass
class ApplicationDefaults:
    """Defaults used when applying from a profile."""
    resume_file: str = ""
    cover_letter_template: Optional[str] = None
    default_answers: Dict[str, str] = field(default_factory=dict)


@dataclass
class SearchProfile:
    """A named, enable-able search configuration owned by the user."""
    id: str
    name: str
    platform: PlatformType
    enabled: bool = True
    search: SearchCriteria = field(default_factory=SearchCriteria)
    application: ApplicationDefaults = field(default_factory=ApplicationDefaults)
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchProfile":
        """Build a profile from a plain mapping (YAML import, DB row JSON)."""
        search = data.get("search") or {}
        application = data.get("application") or {}
        known_search = {k: v for k, v in search.items() if k in SearchCriteria.__dataclass_fields__}
        known_app = {k: v for k, v in application.items() if k in ApplicationDefaults.__dataclass_fields__}
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            platform=PlatformType(data["platform"]),
            enabled=bool(data.get("enabled", True)),
            search=SearchCriteria(**known_search),
            application=ApplicationDefaults(**known_app),
            created_at=data.get("created_at") or utc_now_iso(),
            updated_at=data.get("updated_at") or utc_now_iso(),
        )


# ============== Listings ==============

@dataclass
class ListingCard:
    """Card-level data read from a search results page."""
    external_id: str
    title: str = ""
    company: str = ""
    location: str = ""
    url: str = ""
    easy_apply: bool = False
    snippet: str = ""


@dataclass
class JobDetails:
    """Detail-page data for one listing."""
    description: str = ""
    salary: Optional[str] = None
    posted_date: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None


@dataclass
class JobListing:
    """One persisted posting. (external_id, platform) is its natural key."""
    external_id: str
    platform: PlatformType
    url: str
    title: str
    company: str = ""
    location: str = ""
    profile_id: Optional[str] = None
    salary: Optional[str] = None
    job_type: str = "full-time"
    description: str = ""
    posted_date: str = field(default_factory=utc_now_iso)
    easy_apply: bool = False
    status: JobStatus = JobStatus.NEW
    id: Optional[str] = None

    # Analysis
    match_score: Optional[float] = None
    match_reasoning: Optional[str] = None
    summary: Optional[str] = None
    red_flags: List[str] = field(default_factory=list)
    highlights: List[str] = field(default_factory=list)

    # Application details
    applied_at: Optional[str] = None
    application_answers: Dict[str, str] = field(default_factory=dict)
    cover_letter_used: Optional[str] = None
    resume_used: Optional[str] = None

    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["platform"] = self.platform.value
        data["status"] = self.status.value
        return data


# ============== Applications ==============

@dataclass
class ApplicationProgress:
    step: int
    current_action: str
    total_steps: Optional[int] = None


@dataclass
class ApplicationResult:
    """Outcome of one apply attempt. Consumed by the runner, never persisted as-is."""
    success: bool
    job_id: Optional[str]
    answers_used: Dict[str, str] = field(default_factory=dict)
    cover_letter_used: Optional[str] = None
    resume_used: Optional[str] = None
    error_message: Optional[str] = None
    needs_manual_intervention: bool = False
    intervention_reason: Optional[str] = None


# ============== AI Results ==============

@dataclass
class JobAnalysis:
    match_score: float  # 0-1
    reasoning: str = ""
    summary: str = ""
    red_flags: List[str] = field(default_factory=list)
    highlights: List[str] = field(default_factory=list)
    recommended_resume: str = "default"


@dataclass
class GeneratedAnswer:
    answer: str
    confidence: float = 0.0
    needs_review: bool = True


@dataclass
class ProposalResult:
    cover_letter: str
    suggested_bid: Optional[float] = None
    estimated_duration: Optional[str] = None
    confidence: float = 0.0
    needs_review: bool = True


# ============== Automation Status ==============

@dataclass
class AutomationStatus:
    """Externally visible snapshot of a runner."""
    state: AutomationState = AutomationState.IDLE
    current_action: Optional[str] = None
    jobs_extracted: int = 0
    jobs_analyzed: int = 0
    applications_submitted: int = 0
    actions_per_minute: int = 0
    session_start_time: Optional[str] = None
    errors: List[str] = field(default_factory=list)

    def snapshot(self) -> "AutomationStatus":
        """Detached copy safe to hand to collaborators."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data
