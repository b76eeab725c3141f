from .enums import AppRole, BookingStatus, ResourceType
from .slot import Slot
from .booking import ACTIVE_BOOKING_INDEX, Booking
from .user_role import UserRole
from .weekly_quota import WeeklyQuota
from .audit_log import AuditLog, ActorType
