from safety_net.models.user import User
from safety_net.models.profile import Profile
from safety_net.models.medication import Medication
from safety_net.models.medication_schedule import MedicationSchedule
from safety_net.models.medication_log import MedicationLog
from safety_net.models.alert_claim import AlertClaim

__all__ = ["User", "Profile", "Medication", "MedicationSchedule", "MedicationLog", "AlertClaim"]
