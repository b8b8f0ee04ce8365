"""
Startup gates for the advisory sync.

- resolve_credential: Load the access key identity and repository locator
- PrerequisiteChecker: Verify mirror client and store engine are available
"""
from .credentials import AccessCredential, credential_present, resolve_credential
from .prerequisites import CapabilityResult, PrerequisiteChecker, is_archive_locator

__all__ = [
    "AccessCredential",
    "credential_present",
    "resolve_credential",
    "CapabilityResult",
    "PrerequisiteChecker",
    "is_archive_locator",
]
