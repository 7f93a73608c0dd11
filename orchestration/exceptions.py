"""Errors raised by the scoring engine, orchestrator and campaign pipeline."""

from typing import Optional


class LeadflowError(Exception):
    """Base class for all engine errors."""


class ContactNotFoundError(LeadflowError):
    """The requested contact does not exist."""

    def __init__(self, contact_id: str):
        self.contact_id = contact_id
        super().__init__(f"Contact not found: {contact_id}")


class CampaignNotFoundError(LeadflowError):
    """The requested campaign does not exist."""

    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign not found: {campaign_id}")


class DataFetchError(LeadflowError):
    """The store failed while loading data a request depends on."""

    def __init__(self, table: str, cause: Exception):
        self.table = table
        self.cause = cause
        super().__init__(f"Failed to read {table}: {cause}")


class InvalidAgentTypeError(LeadflowError):
    """Agent type is not in the configured lifetime table."""

    def __init__(self, agent_type: str):
        self.agent_type = agent_type
        super().__init__(f"Unknown agent type: {agent_type}")


class ContactLockTimeout(LeadflowError):
    """Another operation held the contact's lock for too long."""

    def __init__(self, contact_id: str, timeout: float):
        self.contact_id = contact_id
        self.timeout = timeout
        super().__init__(
            f"Could not lock contact {contact_id} within {timeout}s"
        )


class MessageGenerationError(LeadflowError):
    """The message generation service failed or timed out."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message)
