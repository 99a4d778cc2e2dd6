"""Attendance statistics"""

from collections.abc import Iterable

ATTENDANCE_STATUSES = ("present", "absent", "late", "excused")
ATTENDED_STATUSES = ("present", "late")


def summarize_attendance(statuses: Iterable[str]) -> dict:
    """
    Count rows per status. Late counts as attended, so
    attendance_rate = (present + late) / total, 0 when there are no rows.
    """
    counts = {status: 0 for status in ATTENDANCE_STATUSES}
    total = 0
    for status in statuses:
        total += 1
        if status in counts:
            counts[status] += 1

    attended = counts["present"] + counts["late"]
    return {
        "total_sessions": total,
        "present_count": counts["present"],
        "absent_count": counts["absent"],
        "late_count": counts["late"],
        "excused_count": counts["excused"],
        "attendance_rate": round(attended / total, 4) if total else 0.0,
    }
