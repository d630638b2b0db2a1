from .alert import DailyGoalsNotification, WhatsAppAlertLog  # noqa: F401
from .calendar import DailyReminder, Event  # noqa: F401
from .finance import Transaction  # noqa: F401
from .food_diary import FoodDiaryEntry, FoodDiaryProfile, HydrationLog  # noqa: F401
from .profile import ProfileAuth  # noqa: F401
from .workout import WorkoutRoutine, WorkoutSchedule  # noqa: F401
