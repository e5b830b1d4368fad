from .user import User, StaffSchedule
from .clinic import Clinic, Speciality, ClinicDoctor, ClinicDoctorSpeciality, ClinicReceptionist
from .appointment import Appointment, AppointmentStatus, AppointmentPriority
from .billing import Bill, Payment, BillStatus, PaymentMethod
from .notification import Notification
