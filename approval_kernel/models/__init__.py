"""ORM models.  Importing this package registers every table on Base.metadata."""

from approval_kernel.models.flow import ApprovalFlowModel
from approval_kernel.models.user import UserModel
from approval_kernel.models.workflow_entity import WorkflowEntityModel

__all__ = [
    "ApprovalFlowModel",
    "UserModel",
    "WorkflowEntityModel",
]
