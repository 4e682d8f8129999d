"""Models package."""

from .user import User
from .profile import Profile
from .saved_item import SavedItem
