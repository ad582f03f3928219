"""
Clinic tenancy service.

Organization (tenant) resolution, membership management and access control
for the clinical information system.
"""
