"""
Section manifest — which sections a plan category must populate.

Every category gets the shared sections, in the same order, followed by
its own category-specific sections. Category-specific lists are disjoint.

Usage:
    from planforge.services.section_manifest import available_sections
    available_sections("NonProfit")   # 14 shared + 5 non-profit sections
"""

from planforge.core.exceptions import ValidationError
from planforge.models.plan import (
    CATEGORY_LEAN_CANVAS,
    CATEGORY_NON_PROFIT,
    CATEGORY_STANDARD,
)

SHARED_SECTIONS = (
    "ExecutiveSummary",
    "ProblemStatement",
    "Solution",
    "MarketAnalysis",
    "CompetitiveAnalysis",
    "SwotAnalysis",
    "BusinessModel",
    "MarketingStrategy",
    "BrandingStrategy",
    "OperationsPlan",
    "ManagementTeam",
    "FinancialProjections",
    "FundingRequirements",
    "RiskAnalysis",
)

CATEGORY_SECTIONS = {
    CATEGORY_STANDARD: ("ExitStrategy",),
    CATEGORY_NON_PROFIT: (
        "MissionStatement",
        "SocialImpact",
        "BeneficiaryProfile",
        "GrantStrategy",
        "SustainabilityPlan",
    ),
    CATEGORY_LEAN_CANVAS: (),
}


def available_sections(category: str) -> list[str]:
    """Ordered section list for ``category``. Raises ValidationError for an unknown category."""
    if category not in CATEGORY_SECTIONS:
        raise ValidationError(
            f"Unknown plan category: {category!r}",
            details={"category": category, "supported": list(CATEGORY_SECTIONS)},
        )
    return list(SHARED_SECTIONS) + list(CATEGORY_SECTIONS[category])


def is_available(category: str, section: str) -> bool:
    return section in available_sections(category)
