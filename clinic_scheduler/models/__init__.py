"""Database models."""

from sqlalchemy import MetaData

from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.models.appointments import metadata as appointments_metadata
from clinic_scheduler.models.schedules import doctor_schedules
from clinic_scheduler.models.schedules import metadata as schedules_metadata

# Combined metadata for table creation and migrations
metadata = MetaData()
for _source in (schedules_metadata, appointments_metadata):
    for _table in _source.tables.values():
        _table.to_metadata(metadata)

__all__ = [
    "appointments",
    "doctor_schedules",
    "metadata",
]
