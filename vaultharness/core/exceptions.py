"""
vaultharness Exception Hierarchy

All exceptions inherit from HarnessError for easy catching.

Two families matter to test authors:
    ClientError        - a protocol-level failure reported by the network.
                         Carried as a value inside Result; raised only by
                         Result.unwrap() or by validating constructors.
    ContractViolation  - the harness saw something it never expects
                         (foreign response, no event, request before
                         connect). Fatal. Subclasses AssertionError so a
                         test fails loudly instead of recovering.
"""

from enum import Enum


class HarnessError(Exception):
    """Base exception for all vaultharness errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ClientErrorCode(str, Enum):
    """Protocol failure codes a response may carry."""
    ACCESS_DENIED              = "access_denied"
    NO_SUCH_ACCOUNT            = "no_such_account"
    ACCOUNT_EXISTS             = "account_exists"
    NO_SUCH_DATA               = "no_such_data"
    DATA_EXISTS                = "data_exists"
    DATA_TOO_LARGE             = "data_too_large"
    TOO_MANY_ENTRIES           = "too_many_entries"
    INVALID_ENTRY_ACTIONS      = "invalid_entry_actions"
    NO_SUCH_ENTRY              = "no_such_entry"
    NO_SUCH_KEY                = "no_such_key"
    INVALID_OWNERS             = "invalid_owners"
    INVALID_SUCCESSOR          = "invalid_successor"
    INVALID_OPERATION          = "invalid_operation"
    LOW_BALANCE                = "low_balance"
    INVALID_INVITATION         = "invalid_invitation"
    INVITATION_ALREADY_CLAIMED = "invitation_already_claimed"
    NETWORK_OTHER              = "network_other"


class ClientError(HarnessError):
    """
    Protocol-level failure.

    Two errors are equal when code and details are equal, so tests can
    write ``assert res.error == ClientError(ClientErrorCode.NO_SUCH_DATA)``.
    """

    def __init__(self, code: ClientErrorCode, message: str = None, details: dict = None):
        super().__init__(message or code.value, details)
        self.code = code

    def __eq__(self, other):
        if not isinstance(other, ClientError):
            return NotImplemented
        return self.code == other.code and self.details == other.details

    def __hash__(self):
        return hash(self.code)

    def __repr__(self):
        if self.details:
            return f"ClientError({self.code.name}, details={self.details!r})"
        return f"ClientError({self.code.name})"


class ContractViolation(HarnessError, AssertionError):
    """Raised when the harness observes an event it never expects"""
    pass


class GeneratorExhausted(HarnessError):
    """Raised when a retry-until-unique generator hits its retry bound"""
    pass


class ConfigError(HarnessError):
    """Raised when harness configuration cannot be loaded"""
    pass
