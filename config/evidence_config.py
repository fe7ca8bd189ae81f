"""
Evidence Engine Configuration for SAM.

Constants shared by the merger, resolver and lookup services.
Environment-dependent values live in config/settings.py.
"""


class EvidenceConfig:
    """Configuration for evidence construction."""

    # Characters of message text kept in an iMessage snippet
    MESSAGE_SNIPPET_LENGTH: int = 200

    # Fallback titles / snippets
    UNTITLED_EVENT: str = "Untitled Event"
    UNTITLED_EMAIL: str = "(No Subject)"
    UNKNOWN_PARTICIPANT: str = "Unknown"
    ATTACHMENT_PLACEHOLDER: str = "[Attachment]"
    NO_TEXT_PLACEHOLDER: str = "[No text]"


class PhoneKeyConfig:
    """Phone canonicalization rules."""

    # Numbers with fewer digits never match anything
    MIN_DIGITS: int = 7

    # Key is the trailing digits, so "+1 415..." and "415..." collide on purpose
    KEY_DIGITS: int = 10
