"""
Site hint files.

Each supported site ships a JSON hint file (adapters/hints/<platform>-jobs.json)
describing, per action, the selectors, text matches and aria labels that
locate each step's element. A copy in HINTS_DIR overrides the bundled one
and is where updates are written.
"""

import json
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import EngineConfig, get_config
from .models import utc_now_iso

logger = logging.getLogger(__name__)

BUNDLED_HINTS_DIR = Path(__file__).resolve().parent.parent / "adapters" / "hints"


@dataclass
class HintStep:
    intent: str
    selectors: List[str] = field(default_factory=list)
    text_matches: List[str] = field(default_factory=list)
    aria_labels: List[str] = field(default_factory=list)
    location: str = ""
    element_type: str = ""
    fallback_description: str = ""
    last_verified: str = ""
    confidence: float = 0.8
    failure_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HintStep":
        hint = data.get("hint") or {}
        return cls(
            intent=data["intent"],
            selectors=list(hint.get("selectors") or []),
            text_matches=list(hint.get("textMatches") or []),
            aria_labels=list(hint.get("ariaLabels") or []),
            location=hint.get("location") or "",
            element_type=hint.get("elementType") or "",
            fallback_description=data.get("fallbackDescription") or "",
            last_verified=data.get("lastVerified") or "",
            confidence=float(data.get("confidence", 0.8)),
            failure_count=int(data.get("failureCount", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent,
            "hint": {
                "selectors": self.selectors,
                "textMatches": self.text_matches,
                "ariaLabels": self.aria_labels,
                "location": self.location,
                "elementType": self.element_type,
            },
            "fallbackDescription": self.fallback_description,
            "lastVerified": self.last_verified,
            "confidence": self.confidence,
            "failureCount": self.failure_count,
        }


@dataclass
class SiteHintFile:
    site: str
    last_full_scan: str = ""
    last_verified: str = ""
    actions: Dict[str, List[HintStep]] = field(default_factory=dict)
    change_log: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SiteHintFile":
        actions = {
            name: [HintStep.from_dict(s) for s in (action.get("steps") or [])]
            for name, action in (data.get("actions") or {}).items()
        }
        return cls(
            site=data.get("site", ""),
            last_full_scan=data.get("lastFullScan") or "",
            last_verified=data.get("lastVerified") or "",
            actions=actions,
            change_log=list(data.get("changeLog") or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "site": self.site,
            "lastFullScan": self.last_full_scan,
            "lastVerified": self.last_verified,
            "actions": {
                name: {"steps": [s.to_dict() for s in steps]}
                for name, steps in self.actions.items()
            },
            "changeLog": self.change_log,
        }

    def find_step(self, action: str, intent: str) -> Optional[HintStep]:
        for step in self.actions.get(action, []):
            if step.intent == intent:
                return step
        return None


class HintStore:
    """Loads, queries and updates the hint file for one platform."""

    def __init__(
        self,
        platform: str,
        site: str,
        config: Optional[EngineConfig] = None,
        bundled_dir: Optional[Path] = None,
    ):
        self.platform = platform
        self.site = site
        self.config = config or get_config()
        self.bundled_dir = Path(bundled_dir) if bundled_dir else BUNDLED_HINTS_DIR
        self._hints: Optional[SiteHintFile] = None

    @property
    def filename(self) -> str:
        return f"{self.platform}-jobs.json"

    @property
    def override_path(self) -> Path:
        return Path(self.config.HINTS_DIR) / self.filename

    def load(self) -> SiteHintFile:
        if self._hints is not None:
            return self._hints

        for path in (self.override_path, self.bundled_dir / self.filename):
            if not path.exists():
                continue
            try:
                with open(path) as f:
                    self._hints = SiteHintFile.from_dict(json.load(f))
                logger.debug(f"Loaded hints for {self.platform} from {path}")
                return self._hints
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Ignoring unreadable hint file {path}: {e}")

        self._hints = SiteHintFile(site=self.site)
        return self._hints

    def reload(self) -> SiteHintFile:
        self._hints = None
        return self.load()

    def selectors_for(self, action: str, intent: str) -> List[str]:
        """Hint selectors for a step, or [] when the step is unknown or untrusted."""
        step = self.load().find_step(action, intent)
        if not step or step.confidence < self.config.HINT_CONFIDENCE_THRESHOLD:
            return []
        return list(step.selectors)

    def merged_selectors(self, action: str, intent: str, builtin: List[str]) -> List[str]:
        """Trusted hint selectors first, then built-ins, without duplicates."""
        merged = []
        for selector in self.selectors_for(action, intent) + list(builtin):
            if selector not in merged:
                merged.append(selector)
        return merged

    def record_result(self, action: str, intent: str, success: bool):
        step = self.load().find_step(action, intent)
        if not step:
            return
        if success:
            step.confidence = min(1.0, step.confidence + self.config.HINT_CONFIDENCE_BOOST)
            step.failure_count = 0
            step.last_verified = utc_now_iso()
        else:
            step.confidence = max(0.0, step.confidence - self.config.HINT_CONFIDENCE_PENALTY)
            step.failure_count += 1
        self.save()

    def update(self, changes: Dict[str, Any], note: Optional[str] = None):
        """Merge ``changes`` (hint-file JSON shape) into the current hints and persist."""
        current = self.load().to_dict()
        for key, value in changes.items():
            if key == "actions":
                current["actions"].update(value)
            elif key != "changeLog":
                current[key] = value
        current["changeLog"].append({
            "date": utc_now_iso(),
            "change": note or f"Updated {', '.join(sorted(changes)) or 'nothing'}",
        })
        self._hints = SiteHintFile.from_dict(current)
        self.save()

    def save(self):
        if self._hints is None:
            return
        path = self.override_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                json.dump(self._hints.to_dict(), f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save hints for {self.platform}: {e}")
