"""Theory course marks: three class tests, attendance and assignment."""

import math

MARK_LIMITS = {
    'ct1': 20,
    'ct2': 20,
    'ct3': 20,
    'attendance': 10,
    'assignment': 5,
}

GRADE_SCALE = [
    (70, 'A+'),
    (65, 'A'),
    (60, 'A-'),
    (55, 'B+'),
    (50, 'B'),
    (45, 'B-'),
    (40, 'C'),
]

PASS_MARK = 40


def calculate_total(result):
    return sum((getattr(result, field, 0) or 0) for field in MARK_LIMITS)


def get_grade(total):
    for threshold, letter in GRADE_SCALE:
        if total >= threshold:
            return letter
    return 'F'


def validate_marks(payload):
    """Return (marks, errors) for the mark fields present in payload."""
    marks = {}
    errors = {}
    for field, limit in MARK_LIMITS.items():
        if field not in payload or payload[field] in (None, ''):
            continue
        try:
            value = float(payload[field])
        except (TypeError, ValueError):
            errors[field] = 'must be a number'
            continue
        if not math.isfinite(value) or value < 0 or value > limit:
            errors[field] = f'must be between 0 and {limit}'
            continue
        marks[field] = value
    return marks, errors


def result_stats(totals, pass_mark=PASS_MARK):
    count = len(totals)
    if not count:
        return {'average': 0.0, 'highest': 0, 'pass_rate': 0, 'total_students': 0}
    passed = sum(1 for t in totals if t >= pass_mark)
    return {
        'average': round(sum(totals) / count, 1),
        'highest': max(totals),
        'pass_rate': round(passed / count * 100),
        'total_students': count,
    }
