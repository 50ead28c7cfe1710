"""Partner verification models (credentials, derived criteria, badges)."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ottowrite.models.enums import ReviewDecision, VerificationLevel


class VerificationCredentials(BaseModel):
    """Whatever a partner has submitted so far; every field is optional."""

    business_name: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    industry_associations: Optional[List[str]] = None
    membership_proof: Optional[List[str]] = None
    sales_history: Optional[str] = None
    client_list: Optional[str] = None
    linkedin: Optional[str] = None
    twitter: Optional[str] = None
    publishers_marketplace: Optional[str] = None
    query_tracker: Optional[str] = None
    manuscript_wish_list: Optional[str] = None

    def social_links(self) -> List[str]:
        links = [
            self.linkedin,
            self.twitter,
            self.publishers_marketplace,
            self.query_tracker,
            self.manuscript_wish_list,
        ]
        return [link for link in links if link]


class VerificationCriteria(BaseModel):
    email_verified: bool = False
    website_verified: bool = False
    industry_association: bool = False
    sales_history: bool = False
    client_list: bool = False
    social_proof: bool = False
    documents_provided: bool = False


class BadgeDisplay(BaseModel):
    label: str
    color: str
    icon: str
    description: str


class VerificationBadge(BaseModel):
    verified: bool
    level: Optional[VerificationLevel] = None
    verified_at: Optional[datetime] = None
    badge: BadgeDisplay


class IndustryAssociation(BaseModel):
    id: str
    name: str
    website: str
    verification_url: str
    region: str


class VerificationReview(BaseModel):
    """Admin decision on a pending verification request."""

    decision: ReviewDecision
    level: Optional[VerificationLevel] = None  # required to approve
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None  # required to reject
    red_flags: List[str] = Field(default_factory=list)
    additional_info_needed: Optional[str] = None  # required to request more info
