"""Shared FastAPI dependencies."""
from __future__ import annotations

from fastapi import Depends

from clinicflow.core.rate_limit import check_rate_limit
from clinicflow.models.accounts import ROLE_DOCTOR, ROLE_PATIENT, ROLE_PATIENT_NOCLINIC, ROLE_SUPER_ADMIN
from clinicflow.security import get_current_user, require_roles

# router-level: authenticate first, then rate-limit on the resolved user
AUTHENTICATED = [Depends(get_current_user), Depends(check_rate_limit)]

doctor_only = require_roles(ROLE_DOCTOR)
patient_only = require_roles(ROLE_PATIENT, ROLE_PATIENT_NOCLINIC)
linked_patient_only = require_roles(ROLE_PATIENT)
admin_only = require_roles(ROLE_SUPER_ADMIN)
