"""
Directory Models

User records read from the ``students``, ``warden`` and ``hod`` trees of the
document store. The workflow never mutates them.
"""

import enum
from dataclasses import dataclass


class UserRole(str, enum.Enum):
    """Roles in the pass workflow."""

    STUDENT = "student"
    WARDEN = "warden"
    HOD = "hod"


@dataclass
class DirectoryUser:
    """
    A user as the workflow sees it, regardless of how the stored entry
    spells its fields.

    Attributes:
        key: The entry's key in its tree (e.g. "HOD006", a warden id)
        username: Login name (emp_code for students)
        password: bcrypt hash or legacy plaintext; None when stripped
        role: Which table the entry came from
        name: Display name
        department: Department (students, HODs)
        block: Hostel block (students, wardens)
    """

    key: str
    username: str
    password: str | None
    role: UserRole
    name: str
    department: str = ""
    block: str = ""
    contact_no: str = ""
    room_no: str = ""
    position: str = ""
    year: str | None = None

    def __str__(self) -> str:
        return f"DirectoryUser(username={self.username}, role={self.role.value})"
