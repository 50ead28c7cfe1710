"""Partner (agent / publisher) verification scoring and badges.

Weights and level thresholds are fixed business policy, not tuned values.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urlsplit

from ottowrite.models.enums import VerificationLevel, VerificationStatus
from ottowrite.models.verification import (
    BadgeDisplay,
    IndustryAssociation,
    VerificationBadge,
    VerificationCredentials,
    VerificationCriteria,
)

FREE_EMAIL_PROVIDERS = frozenset(
    {"gmail.com", "yahoo.com", "hotmail.com", "outlook.com", "aol.com", "icloud.com", "mail.com"}
)
FREE_WEB_HOSTS = ("wordpress.com", "blogspot.com", "wix.com", "weebly.com")
TRUSTED_PUBLISHER_DOMAINS = (
    "penguinrandomhouse.com",
    "harpercollins.com",
    "simonandschuster.com",
    "macmillan.com",
    "hachette.com",
    "scholastic.com",
)

MAX_SCORE = 100

# (minimum score, level), checked top-down
LEVEL_THRESHOLDS = (
    (90, VerificationLevel.elite),
    (70, VerificationLevel.premium),
    (50, VerificationLevel.standard),
    (30, VerificationLevel.basic),
)

INDUSTRY_ASSOCIATIONS = (
    IndustryAssociation(
        id="aar",
        name="Association of Authors' Representatives (AAR)",
        website="https://aaronline.org",
        verification_url="https://aaronline.org/find-an-agent",
        region="US",
    ),
    IndustryAssociation(
        id="publishers-association",
        name="The Publishers Association",
        website="https://www.publishers.org.uk",
        verification_url="https://www.publishers.org.uk/about-us/our-members/",
        region="UK",
    ),
    IndustryAssociation(
        id="independent-publishers",
        name="Independent Publishers Guild",
        website="https://www.ipg.uk.com",
        verification_url="https://www.ipg.uk.com/membership/member-directory",
        region="UK",
    ),
    IndustryAssociation(
        id="aala",
        name="Australian Literary Agents' Association",
        website="https://austlit.edu.au",
        verification_url="https://austlit.edu.au/austlit/page/6966522",
        region="AU",
    ),
    IndustryAssociation(
        id="literary-agents",
        name="The Association of Literary Agents",
        website="https://www.agentsassoc.co.uk",
        verification_url="https://www.agentsassoc.co.uk/members/",
        region="UK",
    ),
)

VERIFICATION_DOCUMENTS = (
    "Business Registration",
    "Industry Association Membership Card",
    "Recent Sales Documentation",
    "Client References",
    "Professional License",
    "Tax ID Verification",
    "Other",
)

VERIFICATION_RED_FLAGS = (
    "Requests upfront reading fees",
    "Promises guaranteed publication",
    "No verifiable online presence",
    "Recent business formation (< 6 months)",
    "Multiple negative reviews or complaints",
    "No industry association membership",
    "Suspicious email domain (free email services)",
    "Cannot verify claimed sales or clients",
    "Poor professional communication",
    "Inconsistent business information",
)

_UNVERIFIED_BADGE = BadgeDisplay(
    label="Unverified",
    color="gray",
    icon="shield-off",
    description="This partner has not been verified",
)

_LEVEL_BADGES = {
    VerificationLevel.basic: BadgeDisplay(
        label="Verified", color="blue", icon="shield-check", description="Email and website verified"
    ),
    VerificationLevel.standard: BadgeDisplay(
        label="Standard Verified",
        color="green",
        icon="shield-check",
        description="Industry association member with verified credentials",
    ),
    VerificationLevel.premium: BadgeDisplay(
        label="Premium Verified",
        color="purple",
        icon="shield-check",
        description="Established track record with verified sales history",
    ),
    VerificationLevel.elite: BadgeDisplay(
        label="Elite Verified",
        color="gold",
        icon="crown",
        description="Prominent agency/publisher with established industry reputation",
    ),
}


# ---------------------------------------------------------------------------
# Domain checks
# ---------------------------------------------------------------------------

def _email_domain(email: str | None) -> Optional[str]:
    if not email:
        return None
    local, sep, domain = email.strip().rpartition("@")
    if not sep or not local or "." not in domain or domain.startswith(".") or domain.endswith("."):
        return None
    return domain.lower()


def _website_host(url: str | None) -> Optional[str]:
    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not host:
        return None
    return host.lower()


def _on_domain(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def is_valid_business_email(email: str) -> bool:
    """Well-formed address whose domain is not a free-mail provider."""
    domain = _email_domain(email)
    return domain is not None and domain not in FREE_EMAIL_PROVIDERS


def is_valid_business_website(url: str) -> bool:
    """Absolute http(s) URL not hosted on a free site builder."""
    host = _website_host(url)
    return host is not None and not any(_on_domain(host, free) for free in FREE_WEB_HOSTS)


def should_auto_verify(email: str, website: str) -> bool:
    """Major publisher domains qualify for automatic basic verification."""
    hosts = [h for h in (_email_domain(email), _website_host(website)) if h]
    return any(_on_domain(h, trusted) for h in hosts for trusted in TRUSTED_PUBLISHER_DOMAINS)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def calculate_verification_score(request: VerificationCredentials) -> int:
    """0..100 credibility score from submitted credentials."""
    score = 0

    # Basic information
    if request.email and is_valid_business_email(request.email):
        score += 5
    if request.website and is_valid_business_website(request.website):
        score += 5
    if request.phone:
        score += 5
    if request.address:
        score += 5

    # Industry credentials
    if request.industry_associations:
        score += min(len(request.industry_associations) * 10, 15)
    if request.membership_proof:
        score += 15

    # Track record
    if request.sales_history:
        score += 15
    if request.client_list:
        score += 15

    # Social proof
    score += min(len(request.social_links()) * 4, 20)

    return min(score, MAX_SCORE)


def get_recommended_level(score: int) -> Optional[VerificationLevel]:
    for minimum, level in LEVEL_THRESHOLDS:
        if score >= minimum:
            return level
    return None


def derive_criteria(request: VerificationCredentials, documents_provided: bool = False) -> VerificationCriteria:
    return VerificationCriteria(
        email_verified=bool(request.email) and is_valid_business_email(request.email),
        website_verified=bool(request.website) and is_valid_business_website(request.website),
        industry_association=bool(request.industry_associations),
        sales_history=bool(request.sales_history),
        client_list=bool(request.client_list),
        social_proof=bool(request.social_links()),
        documents_provided=documents_provided,
    )


def meets_verification_level(criteria: VerificationCriteria, level: VerificationLevel) -> bool:
    basic = criteria.email_verified and criteria.website_verified
    if level == VerificationLevel.basic:
        return basic
    if level == VerificationLevel.standard:
        return basic and criteria.industry_association
    if level == VerificationLevel.premium:
        return basic and criteria.industry_association and criteria.sales_history
    if level == VerificationLevel.elite:
        return (
            basic
            and criteria.industry_association
            and criteria.sales_history
            and criteria.client_list
            and criteria.social_proof
        )
    return False


def calculate_verification_level(criteria: VerificationCriteria) -> Optional[VerificationLevel]:
    for level in (
        VerificationLevel.elite,
        VerificationLevel.premium,
        VerificationLevel.standard,
        VerificationLevel.basic,
    ):
        if meets_verification_level(criteria, level):
            return level
    return None


# ---------------------------------------------------------------------------
# Display
# ---------------------------------------------------------------------------

def get_verification_badge(
    status: VerificationStatus,
    level: Optional[VerificationLevel] = None,
    verified_at=None,
) -> VerificationBadge:
    if status != VerificationStatus.verified or level is None:
        return VerificationBadge(verified=False, badge=_UNVERIFIED_BADGE)
    return VerificationBadge(verified=True, level=level, verified_at=verified_at, badge=_LEVEL_BADGES[level])


def get_verification_status_message(
    status: VerificationStatus,
    level: Optional[VerificationLevel] = None,
) -> str:
    if status == VerificationStatus.unverified:
        return "This partner has not yet requested verification."
    if status == VerificationStatus.pending:
        return "Verification request is under review by our team."
    if status == VerificationStatus.rejected:
        return "Verification request was rejected. Contact support for details."
    if status == VerificationStatus.verified:
        if level is None:
            return "Verified Partner"
        return f"Verified {level.value.capitalize()} Partner - Credentials confirmed"
    return "Status unknown"
