"""Class routine layout helpers.

Routine slots are stored one row per (offering, room, day, time range). A lab
or combined class taught by two teachers is stored as two rows that share the
course, day, times, room and section; for display those rows are merged into
a single slot listing both teachers.
"""
import re

DAYS = [
    {'value': 0, 'label': 'Sunday', 'short': 'Sun'},
    {'value': 1, 'label': 'Monday', 'short': 'Mon'},
    {'value': 2, 'label': 'Tuesday', 'short': 'Tue'},
    {'value': 3, 'label': 'Wednesday', 'short': 'Wed'},
    {'value': 4, 'label': 'Thursday', 'short': 'Thu'},
]

ALL_DAYS = range(0, 7)

PERIODS = [
    {'id': 1, 'start': '08:00', 'end': '08:50', 'label': '08:00-08:50'},
    {'id': 2, 'start': '08:50', 'end': '09:40', 'label': '08:50-09:40'},
    {'id': 3, 'start': '09:40', 'end': '10:30', 'label': '09:40-10:30'},
    {'id': 4, 'start': '10:40', 'end': '11:30', 'label': '10:40-11:30'},
    {'id': 5, 'start': '11:30', 'end': '12:20', 'label': '11:30-12:20'},
    {'id': 6, 'start': '12:20', 'end': '13:10', 'label': '12:20-01:10'},
    {'id': 7, 'start': '14:30', 'end': '15:20', 'label': '02:30-03:20'},
    {'id': 8, 'start': '15:20', 'end': '16:10', 'label': '03:20-04:10'},
    {'id': 9, 'start': '16:10', 'end': '17:00', 'label': '04:10-05:00'},
]

BREAK_AFTER_PERIOD = [3, 6]

SECTIONS = ['A', 'B']

_TIME_RE = re.compile(r'^(\d{1,2}):(\d{2})(?::\d{2})?$')
_TITLE_RE = re.compile(r'^(Dr\.|Prof\.|Mr\.|Ms\.|Mrs\.)\s*', re.IGNORECASE)


def normalize_time(value):
    """'9:5' is rejected, '09:05:00' -> '09:05'. Raises ValueError on bad input."""
    match = _TIME_RE.match((value or '').strip())
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return f"{hour:02d}:{minute:02d}"


def time_to_minutes(value):
    hour, minute = value.split(':')[:2]
    return int(hour) * 60 + int(minute)


def times_overlap(start_a, end_a, start_b, end_b):
    return time_to_minutes(start_a) < time_to_minutes(end_b) and time_to_minutes(end_a) > time_to_minutes(start_b)


def get_teacher_initials(full_name):
    """'Dr. Wahid Ibn Sufian' -> 'WIS'"""
    if not full_name:
        return '??'
    parts = _TITLE_RE.sub('', full_name).strip().split()
    return ''.join(p[0].upper() for p in parts if p)


def format_combined_teacher_initials(teachers):
    if not teachers:
        return '??'
    return ' & '.join(get_teacher_initials(t['full_name']) for t in teachers)


def format_combined_teacher_names(teachers):
    if not teachers:
        return 'Unknown'
    return ', '.join(t['full_name'] for t in teachers)


def _grouping_key(slot):
    offering = slot.get('course_offerings') or {}
    course = offering.get('courses') or {}
    room = slot.get('rooms') or {}
    return (
        course.get('code') or '',
        slot['day_of_week'],
        slot['start_time'],
        slot['end_time'],
        room.get('room_number') or '',
        slot.get('section'),
    )


def group_slots_for_display(raw_slots):
    """Merge slot dicts (as produced by ``RoutineSlot.to_dict``) into display slots."""
    groups = {}
    for slot in raw_slots:
        groups.setdefault(_grouping_key(slot), []).append(slot)

    display_slots = []
    for group in groups.values():
        primary = group[0]
        teachers = []
        seen = set()
        for slot in group:
            teacher = (slot.get('course_offerings') or {}).get('teachers') or {}
            uid = teacher.get('teacher_uid')
            if uid and uid not in seen:
                seen.add(uid)
                teachers.append({'full_name': teacher.get('full_name') or 'Unknown', 'teacher_uid': uid})

        offering = primary.get('course_offerings') or {}
        course = offering.get('courses') or {}
        room = primary.get('rooms') or {}
        display_slots.append({
            'id': primary['id'],
            'slot_ids': [s['id'] for s in group],
            'day_of_week': primary['day_of_week'],
            'start_time': primary['start_time'],
            'end_time': primary['end_time'],
            'section': primary.get('section') or '',
            'room_number': room.get('room_number') or '',
            'room_type': room.get('room_type'),
            'course_code': course.get('code') or '',
            'course_title': course.get('title') or '',
            'course_credit': course.get('credit') or 0,
            'course_type': course.get('course_type') or '',
            'offering_term': offering.get('term') or '',
            'offering_session': offering.get('session') or '',
            'teachers': teachers,
            'teacher_initials': format_combined_teacher_initials(teachers),
            'is_combined': len(group) > 1,
        })
    return display_slots


def slot_matches_period(slot, period):
    return times_overlap(slot['start_time'], slot['end_time'], period['start'], period['end'])


def get_slot_span(slot):
    span = sum(1 for p in PERIODS if slot_matches_period(slot, p))
    return max(span, 1)


def build_routine_grid(display_slots, days=DAYS):
    """Lay display slots out on a day x period grid.

    Each row holds one cell per period. A slot is placed in the first period
    it overlaps and the following periods it covers are marked ``covered``.
    """
    grid = []
    for day in days:
        day_slots = sorted(
            (s for s in display_slots if s['day_of_week'] == day['value']),
            key=lambda s: time_to_minutes(s['start_time']),
        )
        cells = []
        covered_until = -1
        for index, period in enumerate(PERIODS):
            if index <= covered_until:
                cells.append({'period': period['id'], 'covered': True, 'slots': [], 'span': 0})
                continue
            starting = [s for s in day_slots if slot_matches_period(s, period)
                        and not any(slot_matches_period(s, p) for p in PERIODS[:index])]
            span = max((get_slot_span(s) for s in starting), default=1)
            if starting:
                covered_until = index + span - 1
            cells.append({'period': period['id'], 'covered': False, 'slots': starting, 'span': span})
        grid.append({'day': day, 'cells': cells})
    return grid
