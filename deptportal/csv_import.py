import csv
import re
from io import StringIO

from deptportal.terms import TERM_ORDER

VALID_DESIGNATIONS = ['PROFESSOR', 'ASSOCIATE_PROFESSOR', 'ASSISTANT_PROFESSOR', 'LECTURER']

_DESIGNATION_ALIASES = {
    'PROF': 'PROFESSOR',
    'ASSOCIATE_PROF': 'ASSOCIATE_PROFESSOR',
    'ASSOC_PROF': 'ASSOCIATE_PROFESSOR',
    'ASSISTANT_PROF': 'ASSISTANT_PROFESSOR',
    'ASST_PROF': 'ASSISTANT_PROFESSOR',
    'LECT': 'LECTURER',
}


def read_csv_text(file_storage):
    if not file_storage:
        return ''
    data = file_storage.read()
    if isinstance(data, bytes):
        try:
            return data.decode('utf-8-sig')
        except UnicodeDecodeError:
            return data.decode('utf-8', errors='ignore')
    return data


def _split(text):
    lines = [line for line in text.splitlines() if line.strip()]
    rows = list(csv.reader(StringIO('\n'.join(lines))))
    return [[c.strip() for c in row] for row in rows]


def _normalize_header(header):
    return [re.sub(r'[\s-]+', '_', h.strip().lower()) for h in header]


def _find(header, *needles):
    for idx, h in enumerate(header):
        if any(n in h for n in needles):
            return idx
    return -1


def _cell(cols, idx):
    if idx == -1 or idx >= len(cols):
        return ''
    return cols[idx]


def parse_term(raw):
    """Accept '1-1', '1/1' and '11'."""
    cleaned = re.sub(r'\s+', '', raw or '')
    if cleaned in TERM_ORDER:
        return cleaned
    match = re.match(r'^(\d)[/]?(\d)$', cleaned)
    if match:
        term = f"{match.group(1)}-{match.group(2)}"
        if term in TERM_ORDER:
            return term
    return None


def parse_session(raw):
    cleaned = (raw or '').strip()
    if re.match(r'^\d{4}$', cleaned):
        return cleaned
    if re.match(r'^\d{2}$', cleaned):
        return f"20{cleaned}"
    if re.match(r"^'\d{2}$", cleaned):
        return f"20{cleaned[1:]}"
    return cleaned


def parse_designation(raw):
    normalized = re.sub(r'[\s-]+', '_', (raw or '').strip().upper())
    if normalized in VALID_DESIGNATIONS:
        return normalized
    return _DESIGNATION_ALIASES.get(normalized)


def parse_student_csv(text, max_rows=None):
    """Parse a student sheet into (rows, errors). Row numbers in errors are 1-based file lines."""
    lines = _split(text)
    if len(lines) < 2:
        return [], ['CSV file must have a header row and at least one data row.']

    header = _normalize_header(lines[0])
    name_idx = _find(header, 'name')
    email_idx = _find(header, 'email')
    phone_idx = _find(header, 'phone', 'mobile')
    roll_idx = _find(header, 'roll', 'id')
    term_idx = _find(header, 'term')
    session_idx = _find(header, 'session', 'batch', 'year')

    if -1 in (name_idx, email_idx, roll_idx):
        return [], ['CSV must contain "Full Name" (or "Name"), "Email", and "Roll" (or "Roll No" / "Student ID") columns.']
    if -1 in (term_idx, session_idx):
        return [], ['CSV must contain "Term" and "Session" (or "Batch") columns.']

    rows = []
    errors = []
    data_lines = lines[1:]
    if max_rows is not None and len(data_lines) > max_rows:
        errors.append(f'File has {len(data_lines)} rows; only first {max_rows} were processed.')
        data_lines = data_lines[:max_rows]
    for i, cols in enumerate(data_lines, start=2):
        name = _cell(cols, name_idx)
        email = _cell(cols, email_idx).lower()
        roll = _cell(cols, roll_idx)
        if not name or not email or not roll:
            errors.append(f'Row {i}: Missing name, email, or roll number, skipped.')
            continue
        raw_term = _cell(cols, term_idx)
        term = parse_term(raw_term)
        if not term:
            errors.append(f'Row {i} ({name}): Invalid term "{raw_term}", must be like 1-1, 2-1. Skipped.')
            continue
        rows.append({
            'full_name': name,
            'email': email,
            'phone': _cell(cols, phone_idx),
            'roll_no': roll,
            'term': term,
            'session': parse_session(_cell(cols, session_idx)),
        })
    return rows, errors


def parse_faculty_csv(text, max_rows=None):
    lines = _split(text)
    if len(lines) < 2:
        return [], ['CSV file must have a header row and at least one data row.']

    header = _normalize_header(lines[0])
    name_idx = _find(header, 'name')
    email_idx = _find(header, 'email')
    phone_idx = _find(header, 'phone', 'mobile')
    desig_idx = _find(header, 'designation', 'rank', 'position')

    if -1 in (name_idx, email_idx):
        return [], ['CSV must contain "Full Name" and "Email" columns.']

    rows = []
    errors = []
    data_lines = lines[1:]
    if max_rows is not None and len(data_lines) > max_rows:
        errors.append(f'File has {len(data_lines)} rows; only first {max_rows} were processed.')
        data_lines = data_lines[:max_rows]
    for i, cols in enumerate(data_lines, start=2):
        name = _cell(cols, name_idx)
        email = _cell(cols, email_idx).lower()
        if not name or not email:
            errors.append(f'Row {i}: Missing name or email, skipped.')
            continue
        raw_desig = _cell(cols, desig_idx) or 'LECTURER'
        designation = parse_designation(raw_desig)
        if not designation:
            errors.append(f'Row {i}: Invalid designation "{raw_desig}", defaulting to Lecturer.')
        rows.append({
            'full_name': name,
            'email': email,
            'phone': _cell(cols, phone_idx),
            'designation': designation or 'LECTURER',
        })
    return rows, errors
