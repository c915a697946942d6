"""Academic term progression.

A programme runs 4 years of 2 terms each, labelled ``1-1`` through ``4-2``.
Upgrading a student moves them one step forward in ``TERM_ORDER`` and
downgrading moves them one step back.
"""
import re

TERM_ORDER = ['1-1', '1-2', '2-1', '2-2', '3-1', '3-2', '4-1', '4-2']

_ORDINALS = {1: '1st', 2: '2nd', 3: '3rd', 4: '4th'}

UPGRADE = 'upgrade'
DOWNGRADE = 'downgrade'


def term_info(term):
    if term not in TERM_ORDER:
        return None
    year, half = (int(p) for p in term.split('-'))
    return {
        'id': term,
        'label': f"{_ORDINALS[year]} Year {_ORDINALS[half]} Term",
        'short_label': f"Y{year}-T{half}",
        'year': year,
        'term': half,
    }


TERMS = [term_info(t) for t in TERM_ORDER]


def is_valid_term(term):
    return term in TERM_ORDER


def get_next_term(term):
    if term not in TERM_ORDER:
        return None
    idx = TERM_ORDER.index(term)
    if idx == len(TERM_ORDER) - 1:
        return None
    return TERM_ORDER[idx + 1]


def get_prev_term(term):
    if term not in TERM_ORDER:
        return None
    idx = TERM_ORDER.index(term)
    if idx == 0:
        return None
    return TERM_ORDER[idx - 1]


def is_valid_upgrade(current_term, requested_term):
    """The requested term must be a known term strictly after the current one."""
    if current_term not in TERM_ORDER or requested_term not in TERM_ORDER:
        return False
    return TERM_ORDER.index(requested_term) > TERM_ORDER.index(current_term)


def shift_term(term, direction):
    if direction == UPGRADE:
        return get_next_term(term)
    if direction == DOWNGRADE:
        return get_prev_term(term)
    raise ValueError(f"Unknown direction '{direction}'")


def term_from_course_code(code):
    """'CSE 3201' -> '3-2'. Returns None when the code has fewer than two digits."""
    digits = re.sub(r'\D', '', code or '')
    if len(digits) < 2:
        return None
    return f"{digits[0]}-{digits[1]}"


def group_students_by_term(students):
    groups = []
    for info in TERMS:
        members = [s for s in students if s.term == info['id']]
        members.sort(key=lambda s: s.roll_no)
        groups.append({
            'term': info,
            'students': members,
            'next_term': term_info(get_next_term(info['id'])),
            'prev_term': term_info(get_prev_term(info['id'])),
        })
    return groups
