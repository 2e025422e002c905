"""
Academy API — Student export rows for the spreadsheet download

One row per (student, enrolled class); a student with no classes still gets
one row with empty class columns. Schedules are rendered in the reference
zone the classes are stored in and converted into the export zone.
"""
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from motor.motor_asyncio import AsyncIOMotorDatabase

from academy.core.config import get_settings
from academy.db.connection import CLASSES, USERS

settings = get_settings()

EMPTY_CLASS_COLUMNS = {
    "level": "",
    "ageGroup": "",
    "instructor": "",
    "link": "",
    "scheduleReference": "",
    "scheduleExport": "",
}


def format_12h(moment: datetime) -> str:
    period = "pm" if moment.hour >= 12 else "am"
    hour = moment.hour % 12 or 12
    return f"{hour}:{moment.minute:02d}{period}"


def convert_time(hhmm: str, on: date, source: ZoneInfo, target: ZoneInfo) -> datetime:
    hour, _, minute = hhmm.partition(":")
    local = datetime(on.year, on.month, on.day, int(hour), int(minute or 0), tzinfo=source)
    return local.astimezone(target)


def render_schedules(schedule: list[dict[str, Any]], on: date | None = None) -> tuple[str, str]:
    on = on or date.today()
    source = ZoneInfo(settings.SCHEDULE_REFERENCE_TZ)
    target = ZoneInfo(settings.SCHEDULE_EXPORT_TZ)

    reference_lines = []
    export_lines = []
    for slot in schedule:
        reference_lines.append(f"{slot['day']} {slot['startTime']}-{slot['endTime']}")
        start = convert_time(slot["startTime"], on, source, target)
        end = convert_time(slot["endTime"], on, source, target)
        export_lines.append(f"{slot['day']} {format_12h(start)}-{format_12h(end)}")
    return "\n".join(reference_lines), "\n".join(export_lines)


def _creation_day(value: Any) -> str:
    return value.date().isoformat() if isinstance(value, datetime) else ""


async def export_rows(db: AsyncIOMotorDatabase) -> list[dict[str, Any]]:
    students = await db[USERS].find({"privilege": "student"}).to_list(length=None)
    classes = await db[CLASSES].find({}, {"roster": 0}).to_list(length=None)
    by_id = {cls["_id"]: cls for cls in classes}

    rows: list[dict[str, Any]] = []
    for student in students:
        base = {
            "firstName": student.get("firstName", ""),
            "lastName": student.get("lastName", ""),
            "email": student.get("email", ""),
            "creationDate": _creation_day(student.get("creationDate")),
        }
        enrolled = []
        for class_id in student.get("enrolledClasses") or []:
            cls = by_id.get(class_id)
            if cls is None or not isinstance(cls.get("schedule"), list):
                continue
            reference, converted = render_schedules(cls["schedule"])
            level = cls.get("level")
            enrolled.append({
                "level": "" if level is None else level,
                "ageGroup": cls.get("ageGroup") or "",
                "instructor": cls.get("instructor") or "",
                "link": cls.get("link") or "",
                "scheduleReference": reference,
                "scheduleExport": converted,
            })

        if not enrolled:
            rows.append({**base, **EMPTY_CLASS_COLUMNS})
        for class_columns in enrolled:
            rows.append({**base, **class_columns})
    return rows
