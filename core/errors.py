# ================================================================
# File     : errors.py
# Purpose  : Exception taxonomy for RoleRetriever
# Notes    : Read errors are scoped to one environment and never
#            abort the rest of a run
# ================================================================


class RoleRetrieverError(Exception):
    """Base class for every error RoleRetriever raises on purpose."""


class ProviderReadError(RoleRetrieverError):
    """Live role assignments could not be read for an environment."""

    def __init__(self, environment: str, reason: str):
        self.environment = environment
        self.reason = reason
        super().__init__(f"[{environment}] provider read failed: {reason}")


class StateReadError(RoleRetrieverError):
    """Terraform state for an environment is missing or unparseable."""

    def __init__(self, environment: str, reason: str):
        self.environment = environment
        self.reason = reason
        super().__init__(f"[{environment}] state read failed: {reason}")


class DataQualityError(RoleRetrieverError):
    """Assignments that cannot become valid Terraform input (bootstrap only)."""

    def __init__(self, assignment_ids):
        self.assignment_ids = list(assignment_ids)
        joined = ", ".join(self.assignment_ids)
        super().__init__(
            f"{len(self.assignment_ids)} assignment(s) have neither a role name nor a role definition id: {joined}"
        )
