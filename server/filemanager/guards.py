"""File Manager - Company Boundary Guard

Tenant isolation check that runs before any company-scoped folder or file
operation. Raises HTTPException 404/403. Returns the Company if allowed.
"""

from typing import Optional, Protocol

from fastapi import HTTPException

from .models import Company, User


class CompanyLookup(Protocol):
    def find_by_id(self, company_id: str) -> Optional[Company]: ...


def require_company_access(user: User, company_id: str, companies: CompanyLookup) -> Company:
    """
    Unknown company -> 404. systemAdmin -> allowed.
    Anyone else must list company_id in their company memberships -> else 403.
    """
    company = companies.find_by_id(company_id)
    if company is None:
        raise HTTPException(404, f"Company '{company_id}' not found")

    if user.is_system_admin:
        return company

    if company_id not in user.company_ids:
        raise HTTPException(403, f"Not a member of company '{company.name}'")

    return company
