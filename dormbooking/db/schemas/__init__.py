from .booking import Booking, BookingCreate, BookingCancel
from .slot import Slot, SlotOccupancy, WeekGrid
from .quota import QuotaUsage
