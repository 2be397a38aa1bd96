"""Aggregate model imports for Alembic auto-detection."""

from jobflow.models.employee import Employee, EmployeeRole  # noqa: F401
from jobflow.models.product import Product  # noqa: F401

# Workflow core
from jobflow.models.job_card import JobCard, JobCardStatus, JobCardTechnician  # noqa: F401
from jobflow.models.requisition import PartRequisition, RequisitionStatus  # noqa: F401
from jobflow.models.timesheet import Timesheet  # noqa: F401

# Financial
from jobflow.models.invoice import (  # noqa: F401
    Invoice,
    InvoiceItem,
    InvoiceItemType,
    InvoicePayment,
    InvoiceStatus,
    PaymentMethod,
)

# Audit
from jobflow.models.activity_log import ActivityLog  # noqa: F401
