"""BinQR Database Models."""

from binqr.models.user import Profile
from binqr.models.invite import Invite, InviteStatus
from binqr.models.box import Box, BoxContent, Location

__all__ = [
    "Profile",
    "Invite",
    "InviteStatus",
    "Location",
    "Box",
    "BoxContent",
]
