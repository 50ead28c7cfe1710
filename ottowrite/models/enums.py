"""Enums shared by the domain, row and API models."""

from enum import Enum


class ManuscriptFormat(str, Enum):
    text = "text"
    pdf = "pdf"
    docx = "docx"


class WatermarkTechnique(str, Enum):
    zero_width_chars = "zero_width_chars"              # invisible Unicode marks
    homoglyph_substitution = "homoglyph_substitution"  # look-alike letters
    whitespace_encoding = "whitespace_encoding"        # spacing after periods
    metadata_embedding = "metadata_embedding"          # document properties
    fingerprinting = "fingerprinting"                  # content fingerprint


class ManuscriptSection(str, Enum):
    query = "query"
    synopsis = "synopsis"
    samples = "samples"


class AccessAction(str, Enum):
    """Actions recorded in ``manuscript_access_logs``."""

    view_query = "view_query"
    view_synopsis = "view_synopsis"
    view_samples = "view_samples"
    download_attempted = "download_attempted"
    print_attempted = "print_attempted"
    copy_attempted = "copy_attempted"
    share_attempted = "share_attempted"


class SessionActionType(str, Enum):
    """Fine-grained viewer events reported at the end of a session."""

    view = "view"
    scroll = "scroll"
    zoom = "zoom"
    download_attempted = "download_attempted"
    print_attempted = "print_attempted"
    copy_attempted = "copy_attempted"
    share_attempted = "share_attempted"


class AlertType(str, Enum):
    rapid_access = "rapid_access"
    unusual_location = "unusual_location"
    multiple_devices = "multiple_devices"
    access_after_expiry = "access_after_expiry"
    unauthorized_action = "unauthorized_action"
    ip_mismatch = "ip_mismatch"
    suspicious_user_agent = "suspicious_user_agent"
    excessive_duration = "excessive_duration"
    concurrent_sessions = "concurrent_sessions"


class AlertSeverity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"


class AlertStatus(str, Enum):
    """Review workflow: new → investigating → confirmed | false_positive → resolved."""

    new = "new"
    investigating = "investigating"
    confirmed = "confirmed"
    false_positive = "false_positive"
    resolved = "resolved"


class TokenFailure(str, Enum):
    expired = "expired"
    invalid = "invalid"      # bad signature, bad encoding, unsupported alg
    malformed = "malformed"  # signature ok, claims do not form a payload


class VerificationStatus(str, Enum):
    unverified = "unverified"
    pending = "pending"
    rejected = "rejected"
    verified = "verified"


class VerificationLevel(str, Enum):
    basic = "basic"
    standard = "standard"
    premium = "premium"
    elite = "elite"


class VerificationRequestStatus(str, Enum):
    """Status column of ``partner_verification_requests``."""

    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    more_info_needed = "more_info_needed"


class ReviewDecision(str, Enum):
    approve = "approve"
    reject = "reject"
    request_more_info = "request_more_info"
