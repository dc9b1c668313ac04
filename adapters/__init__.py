"""
Job Platform Adapters
Unified interface for searching, extracting and applying across job boards.
Supports: LinkedIn (Easy Apply), Indeed (extraction only), Upwork (proposal drafts).
"""

from typing import Dict, Type, Union

from core.errors import PlatformError
from core.models import PlatformType

from .base import PlatformAdapter, ProgressCallback, QuestionCallback
from .linkedin import LinkedInAdapter
from .indeed import IndeedAdapter
from .upwork import UpworkAdapter


# Adapters registry
ADAPTERS: Dict[PlatformType, Type[PlatformAdapter]] = {
    PlatformType.LINKEDIN: LinkedInAdapter,
    PlatformType.INDEED: IndeedAdapter,
    PlatformType.UPWORK: UpworkAdapter,
}


def get_adapter(platform: Union[PlatformType, str], **kwargs) -> PlatformAdapter:
    """
    Factory function to get the adapter for a platform.

    Args:
        platform: PlatformType or its string value ("linkedin", "indeed", "upwork")
        **kwargs: Passed to the adapter constructor; adapter-specific
            arguments (db, answer_generator, proposal_generator) are only
            forwarded to adapters that accept them.

    Raises:
        PlatformError: unknown platform
    """
    try:
        platform_type = PlatformType(platform.lower() if isinstance(platform, str) else platform)
    except ValueError:
        raise PlatformError(
            f"Unsupported platform: {platform}. Supported: {[p.value for p in ADAPTERS]}",
            platform=str(platform),
        )

    adapter_class = ADAPTERS[platform_type]
    if adapter_class is not LinkedInAdapter:
        kwargs.pop("db", None)
        kwargs.pop("answer_generator", None)
    if adapter_class is not UpworkAdapter:
        kwargs.pop("proposal_generator", None)
    return adapter_class(**kwargs)


__all__ = [
    "ADAPTERS",
    "PlatformAdapter",
    "ProgressCallback",
    "QuestionCallback",
    "LinkedInAdapter",
    "IndeedAdapter",
    "UpworkAdapter",
    "get_adapter",
]
