"""
Directory module - read-only view of students, wardens and HODs.
"""

from hostel_pass.modules.directory.models import DirectoryUser, UserRole

__all__ = ["DirectoryUser", "UserRole"]
