"""
Academy API — Class document shape (collection: classes)

_id, level (int or "conversation"/"ielts"), ageGroup, instructor (free text),
schedule [{day, startTime, endTime}] with HH:MM times in the reference zone,
isEnrollmentOpen, image, link, roster (set of user ObjectIds, inverse of
users.enrolledClasses).
"""

# Fields safe to show next to a student in admin listings (no roster, no join link)
CLASS_SUMMARY_FIELDS = ("level", "ageGroup", "instructor", "schedule", "isEnrollmentOpen", "image")

# Projection for catalog listings
CATALOG_PROJECTION = {"roster": 0, "link": 0}

# Projection for a student's own classes
OWNER_PROJECTION = {"roster": 0}
