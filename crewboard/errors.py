"""
Typed failures of the membership and authorization core.

Every error carries a stable ``code`` for API clients, a user-facing
``message`` specific to the failure, and the HTTP status it maps to.
"""


class CrewboardError(Exception):
    """Base class for expected, recoverable failures."""

    code = "error"
    status_code = 400
    default_message = "The request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# Identity

class IdentityLinkError(CrewboardError):
    code = "identity_link_failed"
    status_code = 502
    default_message = "Could not sign in with the external provider"


class IdentityProviderUnavailable(IdentityLinkError):
    code = "identity_provider_unavailable"
    status_code = 503
    default_message = "The sign-in provider is not responding, please try again"


class NotAuthenticated(CrewboardError):
    code = "not_authenticated"
    status_code = 401
    default_message = "You need to sign in first"


class InvalidCredentials(CrewboardError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password"


class AlreadyRegisteredError(CrewboardError):
    code = "already_registered"
    status_code = 409
    default_message = "An account with this email already exists"


class AccountNotFound(CrewboardError):
    code = "account_not_found"
    status_code = 404
    default_message = "Account not found"


class WeakPasswordError(CrewboardError):
    code = "weak_password"
    status_code = 422
    default_message = "Password is too short"


# Authorization

class PermissionDenied(CrewboardError):
    code = "permission_denied"
    status_code = 403
    default_message = "You do not have permission to do that"


class SelfModificationError(CrewboardError):
    code = "self_modification"
    status_code = 403
    default_message = "You cannot modify your own role or membership"


# Membership

class AlreadyMemberError(CrewboardError):
    code = "already_member"
    status_code = 409
    default_message = "This account is already a member"


class MembershipNotFound(CrewboardError):
    code = "membership_not_found"
    status_code = 404
    default_message = "This account is not a member"


class OwnerInvariantError(CrewboardError):
    code = "owner_required"
    status_code = 409
    default_message = "A team must always have exactly one owner"


class NotTeamMemberError(CrewboardError):
    code = "not_team_member"
    status_code = 409
    default_message = "Only members of the team can join its projects"


class InvalidRoleError(CrewboardError):
    code = "invalid_role"
    status_code = 422
    default_message = "That role cannot be assigned here"


class InvalidStatusError(CrewboardError):
    code = "invalid_status"
    status_code = 422
    default_message = "Unknown project status"


class ConcurrentModification(CrewboardError):
    code = "concurrent_modification"
    status_code = 409
    default_message = "Someone else changed this membership at the same time, please retry"


class TeamNotFound(CrewboardError):
    code = "team_not_found"
    status_code = 404
    default_message = "Team not found"


class ProjectNotFound(CrewboardError):
    code = "project_not_found"
    status_code = 404
    default_message = "Project not found"


# Invitations

class InvitationNotFound(CrewboardError):
    code = "invitation_not_found"
    status_code = 404
    default_message = "This invitation link is invalid"


class InvitationExpired(CrewboardError):
    """The invitation can no longer be used.

    Raised both for invitations past their expiry and for invitations that
    already reached a terminal state; ``reason`` tells them apart.
    """

    code = "invitation_expired"
    status_code = 410
    default_message = "This invitation has expired"

    messages = {
        "expired": "This invitation has expired",
        "accepted": "This invitation has already been used",
        "declined": "This invitation was declined",
    }

    def __init__(self, reason: str = "expired"):
        self.reason = reason
        super().__init__(self.messages.get(reason, self.default_message))


class EmailMismatch(CrewboardError):
    code = "email_mismatch"
    status_code = 403
    default_message = "This invitation was sent to a different email address"


class AlreadyInvitedError(CrewboardError):
    code = "already_invited"
    status_code = 409
    default_message = "An invitation is already pending for this email"


# Infrastructure

class StoreUnavailable(Exception):
    """The database could not be reached after retrying.

    Aborts the request with a generic failure instead of becoming an
    operation result.
    """
