from timetabler.models.academic_term import AcademicSubTerm, AcademicTerm, SubTermName  # noqa: F401
from timetabler.models.academic_year import AcademicYear  # noqa: F401
from timetabler.models.activity_log import ActivityLog  # noqa: F401
from timetabler.models.class_level import ClassLevel, ClassSection, Subclass  # noqa: F401
from timetabler.models.student import Student  # noqa: F401
from timetabler.models.subject import Subject, SubjectAssignment  # noqa: F401
from timetabler.models.submission_link import SubmissionLink  # noqa: F401
from timetabler.models.teacher import Teacher  # noqa: F401
from timetabler.models.timetable import (  # noqa: F401
    AttendanceRecord,
    AttendanceStatus,
    DayOfWeek,
    TimetableEntry,
    TimetablePeriod,
)
